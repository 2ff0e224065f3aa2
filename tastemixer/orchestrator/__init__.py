"""Coordination of debounced generation and the displayed playlist."""

from .generation_queue import GenerationOutcome, GenerationQueue
from .playlist_session import PlaylistSession

__all__ = ["GenerationOutcome", "GenerationQueue", "PlaylistSession"]
