from contextlib import asynccontextmanager
from fastapi import FastAPI
from blobcache.core.config import settings
from blobcache.services.cache import CacheService
from blobcache.utils.logging import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger = get_logger().bind(startup=True)
    cache = CacheService.from_settings(settings)
    app.state.cache = cache
    reaper = cache.reaper(settings)
    if settings.REAPER_ENABLED:
        reaper.start()
    logger.info(
        f"Startup: {app.title} v{app.version} starting, cache dir {settings.CACHE_DIR}"
    )
    yield
    # Shutdown
    await reaper.stop()
    logger.info("Shutdown: App shutting down...")
