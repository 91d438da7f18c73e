"""Domain layer: storage exception taxonomy."""
