"""Post records shared by the repository, the API layer, and the client."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from promptgallery.core.errors import ValidationError


class Post(BaseModel):
    """A persisted generated image plus its metadata and like counter.

    Attributes:
        id: Opaque unique identifier, immutable after creation.
        name: Display name of the author.
        prompt: Text prompt the image was generated from.
        photo: Image reference (URL, data URI, or bare base64).
        likes: Non-negative like counter.
        created_at: Creation time (UTC).
    """

    id: str
    name: str
    prompt: str
    photo: str
    likes: int = Field(default=0, ge=0)
    created_at: datetime


class NewPostInput(BaseModel):
    """Fields supplied by the caller when creating a post."""

    name: str
    prompt: str
    photo: str


def normalize_new_post(post: NewPostInput) -> NewPostInput:
    """Strip whitespace and reject blank required fields.

    Args:
        post: Caller-supplied fields.

    Returns:
        A copy with ``name`` and ``prompt`` stripped.

    Raises:
        ValidationError: If ``name``, ``prompt`` or ``photo`` is blank.
    """
    name = (post.name or "").strip()
    prompt = (post.prompt or "").strip()
    photo = (post.photo or "").strip()

    missing = [
        field_name
        for field_name, value in (("name", name), ("prompt", prompt), ("photo", photo))
        if not value
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return NewPostInput(name=name, prompt=prompt, photo=photo)
