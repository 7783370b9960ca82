"""
FastAPI application factory.

``create_app()`` builds the service graph (provider, identity, audio
store, change feed, work queue, submitter, reader), attaches it to
``app.state``, and assembles middleware, error handlers and routers.
The lifespan initializes the database, starts the polling workers,
re-enqueues unfinished jobs, and tears everything down on shutdown.
The module-level ``app`` instance allows ``uvicorn src.api.app:app --reload``.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api import websocket
from src.api.middleware.error_handler import register_error_handlers
from src.api.middleware.rate_limit import ExpiringCounterStore, RateLimitMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware, SecurityHeadersMiddleware
from src.api.routes import transcription, upload
from src.core.config import Settings, get_settings
from src.services.change_feed import ChangeFeed
from src.services.identity import BaseIdentityProvider, create_identity_provider
from src.services.storage.audio_store import BaseAudioStore, create_audio_store
from src.services.storage.database import close_db, get_engine, init_db
from src.services.transcription import BaseTranscriptionProvider, create_provider
from src.services.transcription.poller import JobPoller
from src.services.transcription.queue import TranscriptionQueue, recover_processing_jobs
from src.services.transcription.reader import TranscriptionReader
from src.services.transcription.submitter import JobSubmitter

logger = logging.getLogger(__name__)


async def _sweep_rate_limits(store: ExpiringCounterStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = store.sweep()
        if removed:
            logger.debug("Swept %d expired rate-limit window(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    Startup: configure logging, create tables, start polling workers and
    recover jobs left ``processing`` by a previous run.
    Shutdown: stop workers, close provider/identity/audio clients, then
    dispose the DB engine.
    """
    settings: Settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    await init_db(get_engine(settings.database_url))
    queue: TranscriptionQueue = app.state.queue
    queue.start()
    await recover_processing_jobs(queue)
    sweeper = asyncio.create_task(
        _sweep_rate_limits(app.state.rate_limit_store, settings.rate_limit_window_seconds)
    )
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await queue.stop()
    for resource in (app.state.provider, app.state.identity, app.state.audio_store):
        await resource.aclose()
    await close_db()


def create_app(
    settings: Settings | None = None,
    provider: BaseTranscriptionProvider | None = None,
    identity: BaseIdentityProvider | None = None,
    audio_store: BaseAudioStore | None = None,
    rate_limit_store: ExpiringCounterStore | None = None,
    feed: ChangeFeed | None = None,
) -> FastAPI:
    """Build and return a fully configured FastAPI application.

    Every collaborator can be injected; anything omitted is built from
    *settings* (or ``get_settings()``).

    Returns:
        FastAPI: The configured application, ready for ``uvicorn``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="SpeechCraft",
        description="Asynchronous audio transcription with job tracking "
        "and realtime status updates.",
        version=settings.app_version,
        lifespan=lifespan,
    )

    # -- Services --
    provider = provider or create_provider(
        settings.transcription_provider,
        api_key=settings.assemblyai_api_key,
        base_url=settings.assemblyai_base_url,
        speech_model=settings.assemblyai_speech_model,
        timeout=settings.provider_timeout_seconds,
    )
    identity = identity or create_identity_provider(settings)
    audio_store = audio_store or create_audio_store(settings)
    feed = feed or ChangeFeed()
    poller = JobPoller(
        provider,
        feed=feed,
        interval=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
    )
    queue = TranscriptionQueue(poller.poll, workers=settings.poll_workers)

    app.state.settings = settings
    app.state.provider = provider
    app.state.identity = identity
    app.state.audio_store = audio_store
    app.state.feed = feed
    app.state.queue = queue
    app.state.submitter = JobSubmitter(provider, identity, queue, feed=feed)
    app.state.reader = TranscriptionReader(audio_store, feed=feed)
    app.state.rate_limit_store = rate_limit_store or ExpiringCounterStore(
        settings.rate_limit_window_seconds
    )

    # -- Middleware (last added runs first) --
    app.add_middleware(RateLimitMiddleware, max_requests=settings.rate_limit_max_requests)
    app.add_middleware(SecurityHeadersMiddleware, hsts=not settings.is_development)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error handlers --
    register_error_handlers(app)

    # -- REST routes --
    app.include_router(upload.router)
    app.include_router(transcription.router)

    # -- WebSocket --
    app.include_router(websocket.router)

    return app


app = create_app()
