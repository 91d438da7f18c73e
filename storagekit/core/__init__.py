"""Core: storage configuration, config schema registry, exception handlers."""
