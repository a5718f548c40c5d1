"""Pydantic request and response models for the Prompt Gallery API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for request validation, serialisation, and OpenAPI documentation.

Models
------
CreatePostRequest
    Payload for ``POST /api/v1/post``.  ``photo`` is optional; when it is
    omitted the server generates one from ``prompt``.
GenerateImageRequest
    Payload for ``POST /api/v1/dalle``.
PostEnvelope / PostListEnvelope / ImageEnvelope
    Success envelopes of the form ``{"status": "success", "data": ...}``.
ErrorEnvelope
    Failure envelope ``{"status": "error", "message": ...}``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from promptgallery.core.models import Post


class CreatePostRequest(BaseModel):
    """Request body for the ``POST /api/v1/post`` endpoint.

    Attributes:
        name: Display name of the author.
        prompt: Prompt text the image was (or will be) generated from.
        photo: Image reference.  ``None`` asks the server to generate it.
    """

    name: str = Field(
        ...,
        description="Display name of the author.",
    )
    prompt: str = Field(
        ...,
        description="Prompt text for the image.",
    )
    photo: str | None = Field(
        default=None,
        description="URL, data URI, or base64 image.  Omit to generate from the prompt.",
    )


class GenerateImageRequest(BaseModel):
    """Request body for the ``POST /api/v1/dalle`` endpoint."""

    prompt: str = Field(
        ...,
        description="Text description of the image to generate.",
    )


class GeneratedImage(BaseModel):
    photo: str = Field(..., description="Base64-encoded PNG data.")


class PostEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: Post


class PostListEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: list[Post]


class ImageEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: GeneratedImage


class MessageEnvelope(BaseModel):
    status: Literal["success"] = "success"
    message: str


class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    message: str


class HealthResponse(BaseModel):
    status: Literal["OK"] = "OK"
