"""Shared pytest fixtures for Prompt Gallery tests."""

import base64
import io
import struct
import zlib
from collections.abc import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from promptgallery.api.main import create_app
from promptgallery.core.config import GalleryConfig
from promptgallery.core.image_gateway import ImageGateway
from promptgallery.core.post_repository import MemoryPostRepository

PROVIDER_BASE_URL = "https://images.test/v1"


def make_png_b64(color: str = "red", size: tuple[int, int] = (4, 4)) -> str:
    """Return a small PNG image as base64 text."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def png_b64() -> str:
    """A valid base64-encoded PNG image.

    Returns:
        Base64 text of a 4x4 red PNG
    """
    return make_png_b64()


@pytest.fixture
def png_factory():
    """Factory building PNG base64 text for a given color and size."""
    return make_png_b64


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))


@pytest.fixture
def oversized_png_b64() -> str:
    """A PNG whose header declares 100000x100000 pixels.

    Returns:
        Base64 text Pillow refuses to open as a decompression bomb
    """
    header = struct.pack(">IIBBBBB", 100_000, 100_000, 8, 2, 0, 0, 0)
    raw = (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def test_config() -> GalleryConfig:
    """Create a test configuration that never touches MongoDB.

    Returns:
        GalleryConfig with the memory backend and a generous rate limit
    """
    return GalleryConfig(
        _env_file=None,
        storage_backend="memory",
        allowed_origins="*",
        rate_limit_max=1000,
        rate_limit_window_seconds=900,
        openai_api_key="test-key",
        openai_base_url=PROVIDER_BASE_URL,
    )


@pytest.fixture
def provider_requests() -> list[httpx.Request]:
    """Requests received by the fake image provider."""
    return []


@pytest.fixture
def provider_transport(png_b64: str, provider_requests: list) -> httpx.MockTransport:
    """Fake image provider that answers every call with *png_b64*."""

    def handler(request: httpx.Request) -> httpx.Response:
        provider_requests.append(request)
        return httpx.Response(200, json={"created": 0, "data": [{"b64_json": png_b64}]})

    return httpx.MockTransport(handler)


@pytest.fixture
def gateway(provider_transport: httpx.MockTransport) -> ImageGateway:
    """Image gateway wired to the fake provider."""
    return ImageGateway(
        api_key="test-key",
        base_url=PROVIDER_BASE_URL,
        transport=provider_transport,
    )


@pytest.fixture
def repository() -> MemoryPostRepository:
    """Empty in-memory post repository."""
    return MemoryPostRepository()


@pytest.fixture
def test_app(test_config, repository, gateway):
    """FastAPI app with injected repository and gateway."""
    return create_app(test_config, repository=repository, gateway=gateway)


@pytest.fixture
def test_client(test_app) -> Generator[TestClient, None, None]:
    """TestClient running the app lifespan.

    Yields:
        TestClient bound to ``test_app``
    """
    with TestClient(test_app) as client:
        yield client

