"""Async HTTP client for the Prompt Gallery API."""

from __future__ import annotations

import logging

import httpx

from promptgallery.core.models import Post

logger = logging.getLogger(__name__)


class GalleryClientError(Exception):
    """A gallery API call failed.

    Attributes:
        status_code: HTTP status, or ``None`` for transport failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GalleryClient:
    """Thin wrapper over the gallery REST endpoints.

    Args:
        base_url: Server root, e.g. ``"http://localhost:8080"``.
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (tests use
            ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "GalleryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_posts(self) -> list[Post]:
        """Return every post, newest first (server order)."""
        data = await self._request("GET", "/api/v1/post")
        return [Post.model_validate(item) for item in data]

    async def like_post(self, post_id: str) -> Post:
        """Add one like and return the server's updated post."""
        data = await self._request("PUT", f"/api/v1/post/{post_id}/like")
        return Post.model_validate(data)

    async def generate_image(self, prompt: str) -> str:
        """Generate an image and return its base64 data."""
        data = await self._request("POST", "/api/v1/dalle", json={"prompt": prompt})
        return data["photo"]

    async def create_post(self, name: str, prompt: str, photo: str | None = None) -> Post:
        """Share a post.  Omitting *photo* lets the server generate it."""
        payload: dict = {"name": name, "prompt": prompt}
        if photo is not None:
            payload["photo"] = photo
        data = await self._request("POST", "/api/v1/post", json=payload)
        return Post.model_validate(data)

    async def _request(self, method: str, url: str, **kwargs):
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise GalleryClientError(f"Could not reach the gallery server: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            raise GalleryClientError(
                message or f"Request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(body, dict) or "data" not in body:
            raise GalleryClientError("Malformed response from the gallery server")
        return body["data"]
