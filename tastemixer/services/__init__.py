"""Service layer for the Taste Mixer client."""
