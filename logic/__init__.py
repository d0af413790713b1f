"""Domain services: validation, trial generation, cart and checkout."""
