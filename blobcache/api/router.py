from fastapi import APIRouter

from blobcache.api.endpoints.cache import router as cache_router
from blobcache.api.endpoints.health import router as health_router

router = APIRouter()
router.include_router(health_router)
router.include_router(cache_router)
