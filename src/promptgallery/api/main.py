"""Prompt Gallery — FastAPI Application.

This module defines :func:`create_app`, the module-level ``app`` built from
the global configuration, all REST routes, and the ``main()`` CLI function
that launches the uvicorn server.

Architecture
------------
The application follows a stateless REST pattern:

- **Posts** are stored by a :class:`~promptgallery.core.post_repository.PostRepository`
  (MongoDB in production, in-memory for development and tests).
- **Image generation** is delegated to
  :class:`~promptgallery.core.image_gateway.ImageGateway`.
- **Rate limiting** uses a per-application
  :class:`~promptgallery.core.rate_limit.RateLimiter`.
- **Errors** raised anywhere below the routes are translated to HTTP by
  :func:`~promptgallery.core.errors.to_http`, either in the exception
  handlers registered at the end of :func:`create_app` or, for anything they
  do not cover, in
  :class:`~promptgallery.api.middleware.ErrorHandlingMiddleware`.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/``                         Greeting
GET       ``/health``                   Liveness check
GET       ``/api/v1/post``              All posts, newest first
GET       ``/api/v1/post/{id}``         Single post
POST      ``/api/v1/post``              Create a post (generates if needed)
PUT       ``/api/v1/post/{id}/like``    Add one like
POST      ``/api/v1/dalle``             Generate an image from a prompt
========  ============================  ====================================

There is no delete endpoint and no ownership model: posts are permanent and
anonymous.

Usage
-----
CLI (installed entry point)::

    promptgallery

Direct invocation::

    python -m promptgallery.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from promptgallery import __version__
from promptgallery.api.middleware import (
    AccessLogMiddleware,
    BodySizeLimitMiddleware,
    ErrorHandlingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    error_response,
)
from promptgallery.api.models import (
    CreatePostRequest,
    ErrorEnvelope,
    GeneratedImage,
    GenerateImageRequest,
    HealthResponse,
    ImageEnvelope,
    MessageEnvelope,
    PostEnvelope,
    PostListEnvelope,
)
from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.database import Database
from promptgallery.core.errors import (
    GalleryError,
    ValidationError,
    error_envelope,
)
from promptgallery.core.image_gateway import ImageGateway
from promptgallery.core.models import NewPostInput
from promptgallery.core.photos import validate_photo
from promptgallery.core.post_repository import (
    MemoryPostRepository,
    MongoPostRepository,
    PostRepository,
)
from promptgallery.core.rate_limit import MemoryCounterStore, RateLimiter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown.

    On startup:
        Connects to MongoDB (unless a repository was injected or the memory
        backend is configured) and creates the image gateway.  A failed
        connection aborts startup.

    On shutdown:
        Closes the gateway's HTTP client and the MongoDB client, but only
        those this lifespan created.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    cfg: GalleryConfig = app.state.config
    database: Database | None = None
    owned_gateway: ImageGateway | None = None

    # --- Startup -----------------------------------------------------------
    if app.state.repository is None:
        if cfg.storage_backend == "memory":
            logger.warning("Using in-memory post storage; posts are lost on restart.")
            app.state.repository = MemoryPostRepository()
        else:
            database = Database(cfg.mongodb_url, cfg.mongodb_database, cfg.mongodb_collection)
            await database.connect()
            app.state.repository = MongoPostRepository(database.posts)

    if app.state.gateway is None:
        owned_gateway = ImageGateway.from_config(cfg)
        app.state.gateway = owned_gateway
        if not owned_gateway.is_configured:
            logger.warning("OPENAI_API_KEY is not set; image generation is disabled.")

    post_count = await app.state.repository.count()
    logger.info(f"Prompt Gallery {__version__} ready with {post_count} posts.")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    if owned_gateway is not None:
        await owned_gateway.aclose()
    if database is not None:
        database.close()
    logger.info("Prompt Gallery shut down.")


# ---------------------------------------------------------------------------
# Request-scoped accessors.
# ---------------------------------------------------------------------------


def _repository(request: Request) -> PostRepository:
    return request.app.state.repository


def _gateway(request: Request) -> ImageGateway:
    return request.app.state.gateway


def _require_text(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field_name} is required")
    return value


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


def _error_responses(*status_codes: int) -> dict[int | str, dict]:
    """OpenAPI ``responses`` entries documenting the error envelope."""
    return {code: {"model": ErrorEnvelope} for code in status_codes}


router = APIRouter(responses=_error_responses(429, 500))


@router.get("/", response_model=MessageEnvelope)
async def index() -> MessageEnvelope:
    """Greet callers hitting the API root."""
    return MessageEnvelope(message="Hello from the Prompt Gallery!")


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness check.  Does not touch the database."""
    return HealthResponse()


@router.get("/api/v1/post", response_model=PostListEnvelope, responses=_error_responses(503))
async def list_posts(request: Request) -> PostListEnvelope:
    """Return every post, newest first.

    Raises:
        StorageError: If the database is unreachable (503).
    """
    posts = await _repository(request).list_all()
    return PostListEnvelope(data=posts)


@router.get(
    "/api/v1/post/{post_id}", response_model=PostEnvelope, responses=_error_responses(404, 503)
)
async def get_post(post_id: str, request: Request) -> PostEnvelope:
    """Return a single post.

    Raises:
        NotFoundError: If no post has this id (404).
    """
    post = await _repository(request).get(post_id)
    return PostEnvelope(data=post)


@router.post(
    "/api/v1/post",
    response_model=PostEnvelope,
    status_code=201,
    responses=_error_responses(400, 413, 502, 503),
)
async def create_post(req: CreatePostRequest, request: Request) -> PostEnvelope:
    """Create a post, generating its photo when none is supplied.

    This endpoint:

    1. Rejects blank ``name`` or ``prompt``.
    2. Validates the supplied ``photo``, or asks the image gateway to
       generate one from ``prompt``.
    3. Stores the post with zero likes.

    Raises:
        ValidationError: Blank fields or an unreadable photo (400).
        UpstreamError: Generation failed (502).
        StorageError: The post could not be saved (503).
    """
    name = _require_text(req.name, "name")
    prompt = _require_text(req.prompt, "prompt")

    if req.photo is None:
        photo = await _gateway(request).generate(prompt)
    else:
        photo = validate_photo(req.photo)

    post = await _repository(request).create(
        NewPostInput(name=name, prompt=prompt, photo=photo)
    )
    return PostEnvelope(data=post)


@router.put(
    "/api/v1/post/{post_id}/like",
    response_model=PostEnvelope,
    responses=_error_responses(404, 503),
)
async def like_post(post_id: str, request: Request) -> PostEnvelope:
    """Add one like to a post and return the updated record.

    Raises:
        NotFoundError: If no post has this id (404).
    """
    post = await _repository(request).increment_likes(post_id)
    return PostEnvelope(data=post)


@router.post(
    "/api/v1/dalle", response_model=ImageEnvelope, responses=_error_responses(400, 413, 502)
)
async def generate_image(req: GenerateImageRequest, request: Request) -> ImageEnvelope:
    """Generate an image from a prompt without storing it.

    Raises:
        ValidationError: Blank prompt (400).
        UpstreamError: The provider failed (502).
    """
    photo = await _gateway(request).generate(req.prompt)
    return ImageEnvelope(data=GeneratedImage(photo=photo))


# ---------------------------------------------------------------------------
# Exception handlers.
# ---------------------------------------------------------------------------


async def _handle_gallery_error(request: Request, exc: GalleryError) -> JSONResponse:
    return error_response(exc)


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request"
    return error_response(ValidationError(message))


async def _handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        error_envelope(str(exc.detail)),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    cfg: GalleryConfig | None = None,
    *,
    repository: PostRepository | None = None,
    gateway: ImageGateway | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        cfg: Configuration.  Defaults to the global ``config``.
        repository: Post repository.  Built in the lifespan when omitted.
        gateway: Image gateway.  Built in the lifespan when omitted.
        rate_limiter: Limiter.  A fresh in-memory limiter is built from
            ``cfg`` when omitted.

    Returns:
        The configured application.
    """
    cfg = cfg or config

    app = FastAPI(
        title="Prompt Gallery",
        description="Gallery API for AI-generated images.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.repository = repository
    app.state.gateway = gateway
    app.state.rate_limiter = rate_limiter or RateLimiter(
        MemoryCounterStore(),
        max_requests=cfg.rate_limit_max,
        window_seconds=cfg.rate_limit_window_seconds,
    )

    # Starlette wraps in reverse registration order: the last middleware
    # added is the outermost.
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        limiter=app.state.rate_limiter,
        trust_proxy=cfg.trust_proxy,
    )
    app.add_middleware(AccessLogMiddleware, trust_proxy=cfg.trust_proxy)
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=cfg.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(router)

    app.add_exception_handler(GalleryError, _handle_gallery_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)

    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port, and log level from :data:`~promptgallery.core.config.config`
    (``HOST``, ``PORT``, ``LOG_LEVEL``).  Defaults to ``0.0.0.0:8080``.
    uvicorn handles ``SIGTERM`` by draining connections and running the
    lifespan shutdown.

    This function is registered as the ``promptgallery`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "promptgallery.api.main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_config=None,
        access_log=False,
    )


if __name__ == "__main__":
    main()
