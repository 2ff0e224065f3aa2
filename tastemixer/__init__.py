"""Taste Mixer: playlist generation on top of the Spotify Web API."""

__version__ = "0.4.0"
