"""Controller layer for decoupling front ends from generation state."""

from .session import GenerationSession, NoImagesError, NoResultsError

__all__ = [
    "GenerationSession",
    "NoImagesError",
    "NoResultsError",
]
