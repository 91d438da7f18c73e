"""Application layer: policies applied around storage operations."""
