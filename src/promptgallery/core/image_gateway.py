"""Image-generation gateway for the Prompt Gallery.

:class:`ImageGateway` forwards a text prompt to an OpenAI-compatible Images
endpoint and returns the generated picture as base64 PNG data.  It owns a
single ``httpx.AsyncClient`` for its lifetime; the FastAPI lifespan closes
it on shutdown.

Request
-------
``POST {openai_base_url}/images/generations`` with::

    {"model": "dall-e-3", "prompt": "...", "n": 1,
     "size": "1024x1024", "response_format": "b64_json"}

Failure Handling
----------------
Every provider problem (missing key, transport error, timeout, non-2xx
status, or a response without image data) raises
:class:`~promptgallery.core.errors.UpstreamError`.  Calls are not retried.
"""

from __future__ import annotations

import logging

import httpx

from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class ImageGateway:
    """Adapter translating a prompt into a call against the image provider.

    Attributes:
        model: Provider model name.
        size: Requested image size, e.g. ``"1024x1024"``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "dall-e-3",
        size: str = "1024x1024",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the gateway.

        Args:
            api_key: Provider API key.  An empty key disables generation.
            base_url: Provider base URL.
            model: Provider model name.
            size: Requested image size.
            timeout: Timeout in seconds for one provider call.
            transport: Optional ``httpx`` transport, used by tests to replace
                the network.
        """
        self._api_key = api_key
        self.model = model
        self.size = size
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: GalleryConfig) -> "ImageGateway":
        return cls(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            model=config.image_model,
            size=config.image_size,
            timeout=config.image_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def generate(self, prompt: str) -> str:
        """Generate one image for *prompt*.

        Args:
            prompt: Text description of the image.

        Returns:
            Base64-encoded PNG data.

        Raises:
            ValidationError: If the prompt is blank.
            UpstreamError: If the provider is not configured, unreachable,
                times out, or returns an unusable response.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationError("prompt is required")
        if not self.is_configured:
            raise UpstreamError("Image generation is not configured")

        payload = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": self.size,
            "response_format": "b64_json",
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        logger.info(f"Requesting image from {self.model} ({len(prompt)} chars)")
        try:
            response = await self._client.post(
                "/images/generations", json=payload, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.error(f"Image provider timed out: {e}")
            raise UpstreamError("Image generation timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Image provider request failed: {e}")
            raise UpstreamError("Image generation service is unreachable") from e

        if response.is_error:
            message = _provider_error_message(response)
            logger.error(f"Image provider returned {response.status_code}: {message}")
            raise UpstreamError(message)

        try:
            image_b64 = response.json()["data"][0]["b64_json"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Malformed image provider response: {e}")
            raise UpstreamError("Image generation returned no image") from e
        if not image_b64:
            raise UpstreamError("Image generation returned no image")
        return image_b64

    async def aclose(self) -> None:
        await self._client.aclose()


def _provider_error_message(response: httpx.Response) -> str:
    """Extract the provider's error message from a failed response."""
    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        message = None
    if message:
        return f"Image generation failed: {message}"
    return f"Image generation failed with status {response.status_code}"
