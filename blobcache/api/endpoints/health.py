from fastapi import APIRouter

from blobcache.schemas.cache import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()
