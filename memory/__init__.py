"""Entity store implementations and catalog seed data."""
