"""
Background retention sweep.

Deletes every entry whose metadata says it was created strictly before
``now - retention_window``. Entries whose metadata cannot be read are left
alone unless an orphan grace period is configured.
"""

import asyncio
from contextlib import suppress
from datetime import datetime, timedelta, timezone

from starlette.concurrency import run_in_threadpool

from blobcache.storage.errors import CacheError, DirectoryReadError, NotFound
from blobcache.storage.ledger import MetadataLedger
from blobcache.storage.locks import KeyLocks
from blobcache.storage.object_store import ObjectStore
from blobcache.utils.logging import get_logger

logger = get_logger()


class Reaper:
    def __init__(
        self,
        store: ObjectStore,
        ledger: MetadataLedger,
        locks: KeyLocks,
        retention_window: timedelta,
        sweep_interval: timedelta,
        orphan_grace: timedelta | None = None,
        staging_ttl: timedelta = timedelta(hours=1),
    ):
        self.store = store
        self.ledger = ledger
        self.locks = locks
        self.retention_window = retention_window
        self.sweep_interval = sweep_interval
        self.orphan_grace = orphan_grace
        self.staging_ttl = staging_ttl
        self._task: asyncio.Task | None = None

    def sweep(self, now: datetime | None = None) -> int:
        """Run one pass over all stored keys and return how many entries were deleted."""
        now = now or datetime.now(timezone.utc)
        try:
            keys = self.store.list()
        except DirectoryReadError as exc:
            logger.error(f"REAPER: failed to read cache directory: {exc.__cause__ or exc}")
            return 0

        deleted = 0
        for key in keys:
            try:
                with self.locks.hold(key):
                    if self._reap(key, now):
                        deleted += 1
            except CacheError as exc:
                logger.error(f"REAPER: failed to process {key}: {exc}")

        self._clear_stale_staging(now)

        if deleted > 0:
            logger.info(f"REAPER: cleanup complete - deleted {deleted} expired entries")
        return deleted

    def _reap(self, key: str, now: datetime) -> bool:
        try:
            metadata = self.ledger.load(key)
        except NotFound as exc:
            return self._reap_orphan(key, now, exc)

        if not metadata.is_expired(self.retention_window, now):
            return False

        self._remove(key)
        logger.info(f"REAPER: deleted expired entry {key} (age: {metadata.age(now)})")
        return True

    def _reap_orphan(self, key: str, now: datetime, reason: NotFound) -> bool:
        if self.orphan_grace is None:
            logger.warning(f"REAPER: {reason.message.lower()} for {key}, skipping")
            return False
        if self.store.blob_mtime(key) >= now - self.orphan_grace:
            logger.warning(f"REAPER: {reason.message.lower()} for {key}, within grace period")
            return False
        self._remove(key)
        logger.info(f"REAPER: deleted orphaned entry {key}")
        return True

    def _remove(self, key: str) -> None:
        # Blob and metadata are removed independently; one failing does not stop the other
        try:
            self.store.delete(key)
        except NotFound:
            logger.warning(f"REAPER: blob for {key} already gone")
        except CacheError as exc:
            logger.error(f"REAPER: failed to delete blob for {key}: {exc.__cause__ or exc}")
        self.ledger.discard(key)

    def _clear_stale_staging(self, now: datetime) -> None:
        cutoff = (now - self.staging_ttl).timestamp()
        try:
            staging = self.store.staging_files()
        except DirectoryReadError:
            return
        for path in staging:
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    logger.info(f"REAPER: removed abandoned upload {path.name}")
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error(f"REAPER: failed to remove {path.name}: {exc}")

    async def run(self):
        """Sweep now, then every ``sweep_interval`` until cancelled."""
        logger.info(
            f"REAPER: started (retention: {self.retention_window}, interval: {self.sweep_interval})"
        )
        try:
            while True:
                try:
                    await run_in_threadpool(self.sweep)
                except Exception:
                    logger.exception("REAPER: sweep failed")
                await asyncio.sleep(self.sweep_interval.total_seconds())
        except asyncio.CancelledError:
            logger.info("REAPER: stopped")
            raise

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="reaper")
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
