"""Client data layer for the Prompt Gallery.

Modules
-------
api_client
    Async HTTP client for the gallery endpoints.
search
    Case-insensitive substring search over loaded posts.
debounce
    Cancellable debounced calls on the asyncio loop.
state
    Page state combining loading, debounced search, and likes.
"""

from promptgallery.client.api_client import GalleryClient, GalleryClientError
from promptgallery.client.debounce import Debouncer
from promptgallery.client.search import filter_posts
from promptgallery.client.state import GalleryState

__all__ = [
    "GalleryClient",
    "GalleryClientError",
    "Debouncer",
    "filter_posts",
    "GalleryState",
]
