"""Observability — logging setup for entry points."""
