import asyncio
from datetime import datetime, timezone
from typing import AsyncIterable, Iterator, List, Tuple

from starlette.concurrency import run_in_threadpool

from blobcache.core.config import Settings
from blobcache.storage.errors import MetadataWriteError, UploadTimeout
from blobcache.storage.ledger import MetadataLedger
from blobcache.storage.locks import KeyLocks
from blobcache.storage.object_store import ObjectStore, StagedBlob, derive_key
from blobcache.storage.reaper import Reaper
from blobcache.utils.logging import get_logger


class CacheService:
    """Blob store, metadata ledger and key locks behind one async interface.

    Uploads are staged without holding any lock. Publishing the blob and
    writing its metadata happen together under the key's lock, which the
    reaper and deletes also take.
    """

    def __init__(
        self,
        objects: ObjectStore,
        ledger: MetadataLedger,
        locks: KeyLocks | None = None,
        upload_timeout: float = 300,
    ):
        self.objects = objects
        self.ledger = ledger
        self.locks = locks or KeyLocks()
        self.upload_timeout = upload_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheService":
        return cls(
            ObjectStore(
                settings.CACHE_DIR,
                compresslevel=settings.COMPRESSION_LEVEL,
                chunk_size=settings.CHUNK_SIZE,
            ),
            MetadataLedger(settings.CACHE_DIR),
            upload_timeout=settings.UPLOAD_TIMEOUT_SECONDS,
        )

    def reaper(self, settings: Settings) -> Reaper:
        return Reaper(
            self.objects,
            self.ledger,
            self.locks,
            retention_window=settings.retention_window,
            sweep_interval=settings.sweep_interval,
            orphan_grace=settings.orphan_grace,
            staging_ttl=settings.staging_ttl,
        )

    # Writes

    async def store(self, key: str, chunks: AsyncIterable[bytes]) -> int:
        """Stream ``chunks`` into the blob for ``key``; returns compressed bytes written."""
        staged = await run_in_threadpool(self.objects.stage, key)
        try:
            await asyncio.wait_for(self._drain(staged, chunks), timeout=self.upload_timeout)
        except asyncio.TimeoutError:
            staged.discard()
            raise UploadTimeout(key)
        except BaseException:
            staged.discard()
            raise
        return await run_in_threadpool(self._commit, staged)

    async def store_bytes(self, key: str, payload: bytes) -> int:
        return await run_in_threadpool(self._put_bytes, key, payload)

    async def store_derived(self, payload: bytes) -> Tuple[str, int]:
        return await run_in_threadpool(self._put_derived, payload)

    async def _drain(self, staged: StagedBlob, chunks: AsyncIterable[bytes]):
        async for chunk in chunks:
            if chunk:
                await run_in_threadpool(staged.write, chunk)

    def _put_bytes(self, key: str, payload: bytes) -> int:
        staged = self.objects.stage(key)
        try:
            staged.write(payload)
        except BaseException:
            staged.discard()
            raise
        return self._commit(staged)

    def _put_derived(self, payload: bytes) -> Tuple[str, int]:
        key = derive_key(payload)
        return key, self._put_bytes(key, payload)

    def _commit(self, staged: StagedBlob) -> int:
        staged.finish()
        created_at = datetime.now(timezone.utc)
        with self.locks.hold(staged.key):
            size = self.objects.publish(staged)
            self._record(staged.key, size, created_at)
        return size

    def _record(self, key: str, size: int, created_at: datetime):
        # A metadata failure does not fail the write; the entry is left without
        # an age so the reaper skips it instead of aging it by an older record.
        try:
            self.ledger.save(key, size, created_at=created_at)
        except MetadataWriteError as exc:
            get_logger().warning(f"Failed to save metadata for {key}: {exc.__cause__}")
            self.ledger.discard(key)

    # Reads

    async def fetch(self, key: str) -> Iterator[bytes]:
        return await run_in_threadpool(self.objects.get, key)

    async def exists(self, key: str) -> bool:
        return await run_in_threadpool(self.objects.exists, key)

    async def keys(self) -> List[str]:
        return await run_in_threadpool(self.objects.list)

    # Deletes

    async def remove(self, key: str) -> None:
        await run_in_threadpool(self._remove, key)

    def _remove(self, key: str) -> None:
        with self.locks.hold(key):
            self.objects.delete(key)
            self.ledger.discard(key)
