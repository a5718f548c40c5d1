"""Client-side search over loaded posts."""

from __future__ import annotations

from collections.abc import Iterable

from promptgallery.core.models import Post


def matches(post: Post, text: str) -> bool:
    """Return True if *text* occurs in the post's name or prompt (any case)."""
    needle = text.casefold()
    return needle in post.name.casefold() or needle in post.prompt.casefold()


def filter_posts(posts: Iterable[Post], text: str) -> list[Post]:
    """Return the posts whose name or prompt contains *text*.

    Matching is a case-insensitive substring test.  Blank *text* matches
    every post.  Order is preserved.
    """
    text = (text or "").strip()
    if not text:
        return list(posts)
    return [post for post in posts if matches(post, text)]
