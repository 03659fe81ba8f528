"""
Comment Brain Service
Main application entry point

Learns a Markov chain from trending YouTube comments, grows it on a timer
under the daily API quota, and serves generated comments over HTTP.
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tubebrain.config import settings
from tubebrain.services.harvester import HarvestConfig, HarvestOrchestrator
from tubebrain.services.scheduler import harvest_loop
from tubebrain.services.storage import ModelStore, StorageError, StoragePaths
from tubebrain.services.youtube import YouTubeClient
from tubebrain.utils.logger import setup_logger

# Setup logging
logger = setup_logger(__name__)


def build_store() -> ModelStore:
    """Storage for map, harvested ids and corpus log, as configured"""
    paths = StoragePaths(
        map_path=Path(settings.MAP_PATH),
        ids_path=Path(settings.HARVESTED_IDS_PATH),
        corpus_log_path=Path(settings.CORPUS_LOG_PATH),
        legacy_path=Path(settings.LEGACY_STORE_PATH) if settings.LEGACY_STORE_PATH else None,
    )
    return ModelStore(paths, layout=settings.STORAGE_LAYOUT)


def build_orchestrator(client: YouTubeClient) -> HarvestOrchestrator:
    return HarvestOrchestrator(
        discovery=client,
        fetcher=client,
        store=build_store(),
        credential=settings.YOUTUBE_API_KEY,
        config=HarvestConfig.from_settings(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for service initialization"""
    logger.info("[BOOT] Starting comment brain...")

    client = YouTubeClient(
        api_base=settings.YOUTUBE_API_BASE,
        region_code=settings.YOUTUBE_REGION_CODE,
        trending_limit=settings.YOUTUBE_TRENDING_LIMIT,
        timeout=settings.FETCH_TIMEOUT_SECONDS,
    )
    harvest_task = None

    try:
        brain = build_orchestrator(client)
        await brain.initialise()
        app.state.brain = brain

        metrics = brain.metrics()
        logger.info(
            f"[BOOT] Brain ready: {metrics.key_count} keys, "
            f"{metrics.harvested_count} harvested videos, quota ceiling {metrics.quota_ceiling}"
        )

        if settings.HARVEST_ENABLED and settings.YOUTUBE_API_KEY:
            harvest_task = asyncio.create_task(
                harvest_loop(
                    brain,
                    settings.HARVEST_INTERVAL_SECONDS,
                    run_immediately=settings.HARVEST_ON_STARTUP,
                )
            )
            logger.info(f"[BOOT] Harvesting every {settings.HARVEST_INTERVAL_SECONDS}s")
        else:
            logger.info("[BOOT] Harvesting disabled (no API key or HARVEST_ENABLED=false)")

        yield

    except Exception as e:
        logger.error(f"[ERR] Failed to initialize: {e}", exc_info=True)
        raise
    finally:
        logger.info("[SHUTDOWN] Cleaning up...")
        if harvest_task is not None:
            harvest_task.cancel()
            with suppress(asyncio.CancelledError):
                await harvest_task
        await client.close()
        logger.info("[SHUTDOWN] Comment brain stopped")


# Create FastAPI app
app = FastAPI(
    title="Comment Brain Service",
    description="Markov chain trained on trending YouTube comments",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Storage write failures
@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError):
    logger.error(f"[ERR] Storage write failed: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": {
                "code": "STORAGE_WRITE_FAILED",
                "message": str(exc),
                "details": {"type": type(exc).__name__},
            },
        },
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"[ERR] Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": {
                "code": "BRAIN_SERVICE_ERROR",
                "message": "Internal server error occurred",
                "details": {"type": type(exc).__name__},
            },
        },
    )


# Health check
@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    brain = getattr(request.app.state, "brain", None)
    return {
        "ok": True,
        "data": {
            "status": "healthy" if brain is not None else "starting",
            "state": brain.state.value if brain is not None else None,
            "harvesting": settings.HARVEST_ENABLED and bool(settings.YOUTUBE_API_KEY),
        },
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Comment Brain Service",
        "version": settings.SERVICE_VERSION,
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "brain": "/brain/*",
        },
    }


from tubebrain.api.routers import brain_router

app.include_router(brain_router.router, tags=["Brain"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tubebrain.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
