"""Core components of the Prompt Gallery service.

- **config**: environment-driven configuration (Pydantic Settings)
- **errors**: domain error taxonomy and the pure HTTP mapping
- **models**: the ``Post`` record and new-post input
- **database**: MongoDB client lifecycle
- **post_repository**: MongoDB and in-memory post storage
- **photos**: validation of submitted photo references
- **image_gateway**: image-generation provider adapter
- **rate_limit**: fixed-window limiter with injectable counter store
"""

from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.errors import (
    ErrorKind,
    GalleryError,
    NotFoundError,
    PayloadTooLargeError,
    RateLimitError,
    StorageError,
    UpstreamError,
    ValidationError,
    to_http,
)
from promptgallery.core.models import NewPostInput, Post

__all__ = [
    "GalleryConfig",
    "config",
    "ErrorKind",
    "GalleryError",
    "NotFoundError",
    "PayloadTooLargeError",
    "RateLimitError",
    "StorageError",
    "UpstreamError",
    "ValidationError",
    "to_http",
    "NewPostInput",
    "Post",
]
