"""
Video Relay API - Main application entry point.

Forwards video-generation requests to the provider, tracks task state,
reconciles provider callbacks and re-hosts finished videos.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from video_relay.artifacts.downloader import ArtifactDownloader
from video_relay.callbacks.service import CallbackReconciler
from video_relay.callbacks.views import router as callbacks_router
from video_relay.core.config import Settings, get_settings
from video_relay.core.database import Database
from video_relay.core.log_config import configure_logging
from video_relay.core.middleware import MaxBodySizeMiddleware
from video_relay.core.rate_limit import RateLimiter
from video_relay.provider.client import ProviderClient
from video_relay.tasks.store import MemoryTaskStore, TaskStore
from video_relay.videos.service import VideoTaskService
from video_relay.videos.views import router as videos_router

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> TaskStore:
    backend = (settings.STORE_BACKEND or "mongo").strip().lower()
    if backend == "memory":
        return MemoryTaskStore(settings.TASK_TTL_SECONDS)
    if backend == "mongo":
        from video_relay.tasks.mongo_store import MongoTaskStore

        return MongoTaskStore(Database.from_settings(settings), settings.TASK_TTL_SECONDS)
    raise ValueError(f"Unknown STORE_BACKEND '{settings.STORE_BACKEND}'")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[TaskStore] = None,
    provider: Optional[ProviderClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    files_dir = Path(settings.FILES_DIR)
    files_dir.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown events."""
        if not settings.APP_TOKEN:
            logger.warning("APP_TOKEN is not set; all first-party requests will be rejected.")
        if not settings.PROVIDER_API_KEY:
            logger.warning("PROVIDER_API_KEY is not set; video requests will fail.")

        task_store = store or build_store(settings)
        provider_client = provider or ProviderClient.from_settings(settings)
        await task_store.start()

        downloader = ArtifactDownloader(
            task_store,
            provider_client,
            files_dir=files_dir,
            public_url_for=settings.public_video_url,
            concurrency=settings.DOWNLOAD_CONCURRENCY,
        )
        app.state.settings = settings
        app.state.store = task_store
        app.state.downloader = downloader
        app.state.rate_limiter = RateLimiter(limit=settings.RATE_LIMIT_PER_MINUTE, window_seconds=60)
        app.state.video_service = VideoTaskService(task_store, provider_client, settings)
        app.state.callback_reconciler = CallbackReconciler(task_store, downloader)
        logger.info(f"{settings.APP_NAME} started (store={type(task_store).__name__})")

        yield

        await downloader.shutdown()
        await provider_client.close()
        await task_store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Relay for third-party video generation with callback reconciliation.",
        lifespan=lifespan,
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        MaxBodySizeMiddleware,
        max_bytes=settings.MAX_REQUEST_BODY_BYTES,
        exempt_paths=[f"{settings.API_PREFIX}/callback"],
    )

    app.include_router(videos_router, prefix=settings.API_PREFIX)
    app.include_router(callbacks_router, prefix=settings.API_PREFIX)
    app.mount(settings.public_files_path, StaticFiles(directory=str(files_dir)), name="files")

    @app.get("/", tags=["Health"])
    async def root():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Detailed health check."""
        return {
            "status": "healthy",
            "store": request.app.state.store.backend_name,
            "version": settings.APP_VERSION,
        }

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
