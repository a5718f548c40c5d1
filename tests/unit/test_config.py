"""Tests for promptgallery.core.config — configuration management.

Tests cover:
- Default values for all configuration fields.
- Environment variable overrides (no prefix).
- CORS allowlist parsing.
- Pydantic validation constraints (port range, backend literal, limits).
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from promptgallery.core.config import DEFAULT_MAX_BODY_BYTES, GalleryConfig

ENV_VARS = (
    "PORT",
    "HOST",
    "MONGODB_URL",
    "ALLOWED_ORIGINS",
    "STORAGE_BACKEND",
    "RATE_LIMIT_MAX",
    "RATE_LIMIT_WINDOW_SECONDS",
    "MAX_BODY_BYTES",
    "OPENAI_API_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every configuration variable from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigDefaults:
    """Verify that GalleryConfig provides the documented defaults."""

    def test_default_port(self, clean_env):
        """Default port should be 8080."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.port == 8080

    def test_default_storage_backend(self, clean_env):
        """MongoDB is the default storage backend."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.storage_backend == "mongodb"
        assert cfg.mongodb_url == ""

    def test_default_cors_is_permissive(self, clean_env):
        """Without ALLOWED_ORIGINS every origin is allowed."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.cors_origins == ["*"]

    def test_default_body_limit_is_50mb(self, clean_env):
        """The body limit should accommodate inline images (50 MiB)."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.max_body_bytes == DEFAULT_MAX_BODY_BYTES == 50 * 1024 * 1024

    def test_default_rate_limit(self, clean_env):
        """100 requests per 15-minute window."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.rate_limit_max == 100
        assert cfg.rate_limit_window_seconds == 900

    def test_generation_disabled_without_key(self, clean_env):
        """The provider key defaults to empty."""
        cfg = GalleryConfig(_env_file=None)
        assert cfg.openai_api_key == ""


class TestConfigEnvironment:
    """Verify environment variable overrides."""

    def test_port_from_env(self, clean_env):
        clean_env.setenv("PORT", "9000")
        cfg = GalleryConfig(_env_file=None)
        assert cfg.port == 9000

    def test_mongodb_url_from_env(self, clean_env):
        clean_env.setenv("MONGODB_URL", "mongodb://db.internal:27017")
        cfg = GalleryConfig(_env_file=None)
        assert cfg.mongodb_url == "mongodb://db.internal:27017"

    def test_allowed_origins_from_env(self, clean_env):
        clean_env.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
        cfg = GalleryConfig(_env_file=None)
        assert cfg.cors_origins == ["https://a.example", "https://b.example"]

    def test_env_file_is_read(self, clean_env, tmp_path):
        """Values in a .env file are used when the environment is silent."""
        env_file = tmp_path / ".env"
        env_file.write_text("PORT=7000\nSTORAGE_BACKEND=memory\n")
        cfg = GalleryConfig(_env_file=env_file)
        assert cfg.port == 7000
        assert cfg.storage_backend == "memory"


class TestCorsOrigins:
    """Test parsing of the comma-separated CORS allowlist."""

    def test_wildcard_among_origins_allows_all(self):
        cfg = GalleryConfig(_env_file=None, allowed_origins="https://a.example,*")
        assert cfg.cors_origins == ["*"]

    def test_blank_setting_allows_all(self):
        cfg = GalleryConfig(_env_file=None, allowed_origins=" , ")
        assert cfg.cors_origins == ["*"]


class TestConfigValidation:
    """Verify Pydantic constraints."""

    def test_port_out_of_range(self):
        with pytest.raises(ValidationError):
            GalleryConfig(_env_file=None, port=70000)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            GalleryConfig(_env_file=None, storage_backend="redis")

    def test_zero_rate_limit_rejected(self):
        with pytest.raises(ValidationError):
            GalleryConfig(_env_file=None, rate_limit_max=0)
