"""Core catalog access."""
