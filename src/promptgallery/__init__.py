"""Prompt Gallery - a REST gallery for AI-generated images."""

__version__ = "0.1.0"

from promptgallery.core.config import GalleryConfig, config

__all__ = [
    "GalleryConfig",
    "config",
]
