import asyncio

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from blobcache.core.dependencies import CacheDependency
from blobcache.schemas.cache import HashStoreResponse, KeyListResponse
from blobcache.storage.errors import InvalidKey, UploadTimeout
from blobcache.utils.logging import get_logger

router = APIRouter(prefix="/cache", tags=["cache"])
logger = get_logger()


@router.get("", response_model=KeyListResponse)
@router.get("/", response_model=KeyListResponse, include_in_schema=False)
async def list_entries(cache: CacheDependency):
    keys = await cache.keys()
    logger.info(f"LIST /cache/ - returned {len(keys)} keys")
    return KeyListResponse(keys=keys, count=len(keys))


@router.post("", response_model=HashStoreResponse)
async def store_by_hash(request: Request, cache: CacheDependency):
    try:
        body = await asyncio.wait_for(request.body(), timeout=cache.upload_timeout)
    except asyncio.TimeoutError:
        raise UploadTimeout()
    except ClientDisconnect:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to read body"
        )

    key, size = await cache.store_derived(body)
    logger.info(f"POST /cache - stored with hash: {key} ({size} bytes)")
    return HashStoreResponse(hash=key)


@router.put("/{key}", status_code=status.HTTP_201_CREATED, response_class=PlainTextResponse)
async def store_entry(key: str, request: Request, cache: CacheDependency):
    try:
        size = await cache.store(key, request.stream())
    except ClientDisconnect:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to read body"
        )
    logger.info(f"PUT /cache/{key} - stored and compressed successfully ({size} bytes)")
    return PlainTextResponse("File stored successfully", status_code=status.HTTP_201_CREATED)


@router.head("/{key}")
async def entry_exists(key: str, cache: CacheDependency):
    try:
        found = await cache.exists(key)
    except InvalidKey:
        found = False
    if found:
        logger.info(f"HEAD /cache/{key} - exists")
        return Response(status_code=status.HTTP_200_OK)
    logger.info(f"HEAD /cache/{key} - not found")
    return Response(status_code=status.HTTP_404_NOT_FOUND)


@router.get("/{key}")
async def fetch_entry(key: str, cache: CacheDependency):
    chunks = await cache.fetch(key)
    logger.info(f"GET /cache/{key} - retrieved and decompressed successfully")
    return StreamingResponse(chunks, media_type="application/octet-stream")


@router.delete("/{key}", response_class=PlainTextResponse)
async def delete_entry(key: str, cache: CacheDependency):
    await cache.remove(key)
    logger.info(f"DELETE /cache/{key} - deleted successfully")
    return PlainTextResponse("File deleted successfully")
