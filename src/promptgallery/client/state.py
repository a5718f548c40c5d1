"""Client-side gallery state: loading, debounced search, and likes.

:class:`GalleryState` is the data layer behind a gallery page.  It holds no
rendering logic; a UI reads :attr:`GalleryState.visible_posts`,
:attr:`GalleryState.loading` and :attr:`GalleryState.search_text` and calls
the three actions:

- :meth:`GalleryState.load` fetches the full post list once per page load.
- :meth:`GalleryState.on_search_change` records the search text and filters
  the loaded posts after a debounce delay.
- :meth:`GalleryState.like` asks the server to add a like and updates the
  local copy only once the server has confirmed it.

Failures are reported through the ``alert`` callback and never retried.
"""

from __future__ import annotations

import logging
from typing import Callable

from promptgallery.client.api_client import GalleryClient, GalleryClientError
from promptgallery.client.debounce import Debouncer
from promptgallery.client.search import filter_posts
from promptgallery.core.models import Post

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SECONDS = 0.5

FETCH_FAILED_MESSAGE = "An error occurred while fetching posts."
LIKE_FAILED_MESSAGE = "An error occurred while liking the post."


class GalleryState:
    """State of one gallery page.

    Attributes:
        loading: True while :meth:`load` is in flight.
        all_posts: Posts as returned by the server, newest first, or
            ``None`` before the first successful load.
        search_text: Current contents of the search box.
        searched_results: Posts matching the last applied search, or
            ``None`` before any search has been applied.
    """

    def __init__(
        self,
        client: GalleryClient,
        alert: Callable[[str], None],
        search_delay: float = SEARCH_DEBOUNCE_SECONDS,
    ) -> None:
        self._client = client
        self._alert = alert
        self._debouncer = Debouncer(search_delay)

        self.loading = False
        self.all_posts: list[Post] | None = None
        self.search_text = ""
        self.searched_results: list[Post] | None = None

    @property
    def visible_posts(self) -> list[Post]:
        """Posts the page should display for the current search text."""
        if self.search_text:
            return self.searched_results or []
        return self.all_posts or []

    async def load(self) -> None:
        """Fetch the post list, alerting on failure."""
        self.loading = True
        try:
            self.all_posts = await self._client.fetch_posts()
        except GalleryClientError as e:
            logger.error(f"Error fetching posts: {e}")
            self._alert(FETCH_FAILED_MESSAGE)
        finally:
            self.loading = False

    def on_search_change(self, text: str) -> None:
        """Record new search input and schedule filtering.

        A pending filter from earlier input is cancelled, so only the last
        input within the debounce delay is applied.
        """
        self.search_text = text
        self._debouncer.call(self._apply_search, text)

    async def wait_for_search(self) -> None:
        """Wait until any scheduled search has been applied."""
        await self._debouncer.wait()

    async def like(self, post_id: str) -> None:
        """Like a post; update local state only after the server confirms."""
        try:
            updated = await self._client.like_post(post_id)
        except GalleryClientError as e:
            logger.error(f"Error liking post {post_id}: {e}")
            self._alert(LIKE_FAILED_MESSAGE)
            return

        self.all_posts = _replace_post(self.all_posts, updated)
        self.searched_results = _replace_post(self.searched_results, updated)

    def close(self) -> None:
        """Cancel pending search work on teardown."""
        self._debouncer.close()

    async def __aenter__(self) -> "GalleryState":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _apply_search(self, text: str) -> None:
        self.searched_results = filter_posts(self.all_posts or [], text)


def _replace_post(posts: list[Post] | None, updated: Post) -> list[Post] | None:
    if posts is None:
        return None
    return [updated if post.id == updated.id else post for post in posts]
