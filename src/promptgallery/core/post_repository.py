"""Post persistence for the Prompt Gallery.

The repository is the only component allowed to mutate stored posts.  Two
implementations share the :class:`PostRepository` interface:

- :class:`MongoPostRepository` stores posts in a MongoDB collection through
  ``motor``.  Likes are incremented server-side with ``$inc`` inside a single
  ``find_one_and_update`` call, so concurrent like requests never lose
  updates.
- :class:`MemoryPostRepository` keeps posts in a dictionary.  It backs the
  ``STORAGE_BACKEND=memory`` development mode and the test-suite.  None of its
  methods await between reading and writing, so each operation runs to
  completion on the event loop without interleaving.

Listing order is newest-first: ``created_at`` descending, ties broken by
insertion order descending.
"""

from __future__ import annotations

import abc
import itertools
import logging
import uuid
from datetime import datetime, timezone

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from promptgallery.core.errors import NotFoundError, StorageError
from promptgallery.core.models import NewPostInput, Post, normalize_new_post

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PostRepository(abc.ABC):
    """Interface for post storage backends."""

    @abc.abstractmethod
    async def list_all(self) -> list[Post]:
        """Return every post, newest first.

        Raises:
            StorageError: If the store is unreachable.
        """

    @abc.abstractmethod
    async def get(self, post_id: str) -> Post:
        """Return a single post.

        Raises:
            NotFoundError: If no post has this id.
        """

    @abc.abstractmethod
    async def create(self, post: NewPostInput) -> Post:
        """Store a new post with a fresh id and zero likes.

        Raises:
            ValidationError: If a required field is missing or blank.
        """

    @abc.abstractmethod
    async def increment_likes(self, post_id: str) -> Post:
        """Atomically add one like and return the updated post.

        Raises:
            NotFoundError: If no post has this id.
        """

    @abc.abstractmethod
    async def count(self) -> int:
        """Return the number of stored posts."""


# ---------------------------------------------------------------------------
# MongoDB backend.
# ---------------------------------------------------------------------------


def _document_to_post(document: dict) -> Post:
    """Convert a MongoDB document into a :class:`Post`."""
    created_at = document["created_at"]
    # Documents written by older clients may carry naive timestamps.
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Post(
        id=str(document["_id"]),
        name=document["name"],
        prompt=document["prompt"],
        photo=document["photo"],
        likes=document.get("likes", 0),
        created_at=created_at,
    )


def _parse_object_id(post_id: str) -> ObjectId:
    """Parse a post id, treating malformed ids as unknown posts."""
    if not ObjectId.is_valid(post_id):
        raise NotFoundError(f"Post {post_id} not found")
    return ObjectId(post_id)


class MongoPostRepository(PostRepository):
    """Post repository backed by a ``motor`` collection.

    Every driver failure is re-raised as :class:`StorageError` so the HTTP
    layer can report it as a 503.
    """

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def list_all(self) -> list[Post]:
        try:
            cursor = self._collection.find({}).sort(
                [("created_at", DESCENDING), ("_id", DESCENDING)]
            )
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Failed to list posts: {e}")
            raise StorageError("Could not read posts") from e
        return [_document_to_post(document) for document in documents]

    async def get(self, post_id: str) -> Post:
        object_id = _parse_object_id(post_id)
        try:
            document = await self._collection.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error(f"Failed to read post {post_id}: {e}")
            raise StorageError("Could not read post") from e
        if document is None:
            raise NotFoundError(f"Post {post_id} not found")
        return _document_to_post(document)

    async def create(self, post: NewPostInput) -> Post:
        post = normalize_new_post(post)
        document = {
            "name": post.name,
            "prompt": post.prompt,
            "photo": post.photo,
            "likes": 0,
            "created_at": _utcnow(),
        }
        try:
            result = await self._collection.insert_one(document)
        except PyMongoError as e:
            logger.error(f"Failed to create post: {e}")
            raise StorageError("Could not save post") from e

        document["_id"] = result.inserted_id
        logger.info(f"Created post {result.inserted_id}")
        return _document_to_post(document)

    async def increment_likes(self, post_id: str) -> Post:
        object_id = _parse_object_id(post_id)
        try:
            document = await self._collection.find_one_and_update(
                {"_id": object_id},
                {"$inc": {"likes": 1}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error(f"Failed to like post {post_id}: {e}")
            raise StorageError("Could not update post") from e
        if document is None:
            raise NotFoundError(f"Post {post_id} not found")
        return _document_to_post(document)

    async def count(self) -> int:
        try:
            return await self._collection.count_documents({})
        except PyMongoError as e:
            raise StorageError("Could not count posts") from e


# ---------------------------------------------------------------------------
# In-memory backend.
# ---------------------------------------------------------------------------


class MemoryPostRepository(PostRepository):
    """Post repository held in process memory.

    Args:
        clock: Callable returning the current UTC time; injectable for tests.
    """

    def __init__(self, clock=_utcnow) -> None:
        self._clock = clock
        self._posts: dict[str, Post] = {}
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()

    async def list_all(self) -> list[Post]:
        posts = sorted(
            self._posts.values(),
            key=lambda post: (post.created_at, self._sequence[post.id]),
            reverse=True,
        )
        return [post.model_copy() for post in posts]

    async def get(self, post_id: str) -> Post:
        post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        return post.model_copy()

    async def create(self, post: NewPostInput) -> Post:
        post = normalize_new_post(post)
        post_id = uuid.uuid4().hex
        stored = Post(
            id=post_id,
            name=post.name,
            prompt=post.prompt,
            photo=post.photo,
            likes=0,
            created_at=self._clock(),
        )
        self._posts[post_id] = stored
        self._sequence[post_id] = next(self._counter)
        logger.debug(f"Created post {post_id} in memory")
        return stored.model_copy()

    async def increment_likes(self, post_id: str) -> Post:
        post = self._posts.get(post_id)
        if post is None:
            raise NotFoundError(f"Post {post_id} not found")
        post.likes += 1
        return post.model_copy()

    async def count(self) -> int:
        return len(self._posts)
