"""Try-on studio bootstrap: configuration, logging and app wiring."""
