import asyncio
import secrets
import time
from contextlib import asynccontextmanager, suppress
from typing import Any, Optional, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from inkwell.api import auth, categories, posts, system, test_support
from inkwell.api.deps import AuthenticationGate
from inkwell.core.config import Settings
from inkwell.core.config import settings as default_settings
from inkwell.core.exception_handlers import ErrorNormalizer, install_exception_handlers
from inkwell.core.logging_config import configure_logging, get_logger
from inkwell.core.process import current_rss_mb, install_loop_exception_handler, install_process_handlers
from inkwell.core.rate_limit import RateLimiter
from inkwell.db import build_engine, create_db_and_tables
from inkwell.middleware.context import RequestContextMiddleware
from inkwell.services.uploads import LocalBlobStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger = app.state.logger

    restore_hooks = install_process_handlers(logger)
    install_loop_exception_handler(asyncio.get_running_loop(), logger)

    # Startup
    logger.info("Inkwell API starting", environment=settings.ENVIRONMENT)
    create_db_and_tables(app.state.engine)
    app.state.blob_store.ensure_root()

    memory_task = None
    if settings.MEMORY_LOG_INTERVAL_SECONDS > 0:
        interval = max(5, settings.MEMORY_LOG_INTERVAL_SECONDS)

        async def log_memory():
            while True:
                logger.info("Process memory", rss_mb=round(current_rss_mb(), 1))
                await asyncio.sleep(interval)

        memory_task = asyncio.create_task(log_memory())

    try:
        yield
    finally:
        if memory_task:
            memory_task.cancel()
            with suppress(asyncio.CancelledError):
                await memory_task
        restore_hooks()
        app.state.engine.dispose()
        logger.info("Inkwell API stopped")


def _resolve_secret(settings: Settings, logger: Any) -> Settings:
    if settings.SECRET_KEY:
        return settings
    if settings.is_production:
        raise ValueError("SECRET_KEY must be set in production")
    # Tokens signed with this key stop verifying on restart
    logger.warning("SECRET_KEY not set; using a random key for this process")
    return settings.model_copy(update={"SECRET_KEY": secrets.token_urlsafe(32)})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and every process-wide component it uses.

    Components are created once here and stored on ``app.state``; request
    handlers receive them through the dependencies in ``inkwell.api.deps``.
    """
    settings = settings or default_settings
    configure_logging(settings)
    logger = get_logger("inkwell")
    settings = _resolve_secret(settings, logger)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.logger = logger
    app.state.started_at = time.monotonic()
    app.state.engine = build_engine(settings.DATABASE_URL)
    app.state.auth_gate = AuthenticationGate(settings, logger)
    app.state.blob_store = LocalBlobStore(settings.UPLOAD_DIR, settings.MAX_UPLOAD_BYTES)
    app.state.rate_limiter = RateLimiter()
    app.state.normalizer = ErrorNormalizer(logger, expose_internals=settings.is_development)

    app.add_middleware(cast(Any, RequestContextMiddleware))
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    install_exception_handlers(app, app.state.normalizer)

    prefix = settings.API_PREFIX
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["auth"])
    app.include_router(posts.router, prefix=f"{prefix}/posts", tags=["posts"])
    app.include_router(categories.router, prefix=f"{prefix}/categories", tags=["categories"])
    app.include_router(system.router, prefix=prefix, tags=["system"])
    app.include_router(test_support.router, prefix=f"{prefix}/test", tags=["test"])

    # Featured images, referenced by filename
    app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    return app


app = create_app()
