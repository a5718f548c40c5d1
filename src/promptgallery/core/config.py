"""Configuration management for the Prompt Gallery service.

This module provides centralized configuration management using Pydantic Settings.
Configuration is loaded from plain environment variables (no prefix), which
keeps the deployment contract identical to the variables operators already
set for the gallery backend: ``PORT``, ``MONGODB_URL``, ``ALLOWED_ORIGINS``.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables
2. .env file in the working directory
3. Default values defined in GalleryConfig

Example .env file:
    PORT=8080
    MONGODB_URL=mongodb://localhost:27017
    ALLOWED_ORIGINS=http://localhost:5173,https://gallery.example.com
    OPENAI_API_KEY=sk-...

Global Configuration Instance
------------------------------
A global ``config`` instance is created automatically at module import time.
Application code that needs a different configuration (tests, scripts) builds
its own :class:`GalleryConfig` and passes it to
:func:`promptgallery.api.main.create_app`.

Usage Example
-------------
    from promptgallery.core.config import config

    print(config.port)
    print(config.cors_origins)
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 50 MiB accommodates inline base64 image payloads.
DEFAULT_MAX_BODY_BYTES = 50 * 1024 * 1024


class GalleryConfig(BaseSettings):
    """Main configuration for the Prompt Gallery service.

    Attributes
    ----------
    Server Settings:
        host : str
            Bind address for uvicorn
        port : int
            Listen port
        log_level : str
            Root logging level used by the CLI entry point

    Storage Settings:
        storage_backend : Literal["mongodb", "memory"]
            Which post repository implementation to build at startup
        mongodb_url : str
            MongoDB connection string (required for the mongodb backend)
        mongodb_database : str
            Database holding the post collection
        mongodb_collection : str
            Name of the post collection

    HTTP Settings:
        allowed_origins : str
            Comma-separated CORS allowlist, ``*`` for any origin
        max_body_bytes : int
            Largest accepted request body
        rate_limit_max : int
            Requests allowed per client within one window
        rate_limit_window_seconds : int
            Length of the fixed rate-limit window
        trust_proxy : bool
            Use the first ``X-Forwarded-For`` entry as the client address

    Image Generation Settings:
        openai_api_key : str
            Provider API key; empty disables generation
        openai_base_url : str
            Provider base URL
        image_model : str
            Provider model name
        image_size : str
            Requested image size
        image_timeout_seconds : float
            Timeout for one provider call

    Examples
    --------
        >>> custom = GalleryConfig(storage_backend="memory", rate_limit_max=5)
        >>> custom.cors_origins
        ['*']
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Server settings
    host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    port: int = Field(
        default=8080,
        description="Server port",
        ge=1,
        le=65535,
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level for the CLI entry point",
    )

    # Storage settings
    storage_backend: Literal["mongodb", "memory"] = Field(
        default="mongodb",
        description="Post repository backend",
    )
    mongodb_url: str = Field(
        default="",
        description="MongoDB connection string",
    )
    mongodb_database: str = Field(
        default="promptgallery",
        description="MongoDB database name",
    )
    mongodb_collection: str = Field(
        default="posts",
        description="MongoDB collection holding posts",
    )

    # HTTP settings
    allowed_origins: str = Field(
        default="*",
        description="Comma-separated CORS allowlist (* allows any origin)",
    )
    max_body_bytes: int = Field(
        default=DEFAULT_MAX_BODY_BYTES,
        description="Maximum request body size in bytes",
        ge=1,
    )
    rate_limit_max: int = Field(
        default=100,
        description="Requests allowed per client per window",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        default=15 * 60,
        description="Rate-limit window length in seconds",
        ge=1,
    )
    trust_proxy: bool = Field(
        default=False,
        description="Take the client address from X-Forwarded-For",
    )

    # Image generation settings
    openai_api_key: str = Field(
        default="",
        description="Image provider API key (empty disables generation)",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Image provider base URL",
    )
    image_model: str = Field(
        default="dall-e-3",
        description="Image provider model name",
    )
    image_size: str = Field(
        default="1024x1024",
        description="Requested image size",
    )
    image_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for one image generation call",
        gt=0,
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the CORS allowlist as a list.

        Blank entries are dropped.  An empty or ``*`` setting yields ``["*"]``.
        """
        origins = [origin.strip() for origin in self.allowed_origins.split(",")]
        origins = [origin for origin in origins if origin]
        if not origins or "*" in origins:
            return ["*"]
        return origins


# Global configuration instance
# Loaded from the environment and .env file when the module is imported.
config = GalleryConfig()
