"""Shared helpers: telemetry and utilities."""
