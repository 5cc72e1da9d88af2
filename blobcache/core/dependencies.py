from typing import Annotated

from fastapi import Depends, Request

from blobcache.services.cache import CacheService


def get_cache(request: Request) -> CacheService:
    """The cache service created by the application lifespan."""
    return request.app.state.cache


CacheDependency = Annotated[CacheService, Depends(get_cache)]
