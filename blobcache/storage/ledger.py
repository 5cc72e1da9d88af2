import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from blobcache.schemas.cache import CacheEntryMetadata
from blobcache.storage.errors import MetadataWriteError, NotFound
from blobcache.storage.object_store import validate_key
from blobcache.utils.logging import get_logger

META_SUFFIX = ".meta"


class MetadataLedger:
    """Per-key JSON sidecars holding creation time and stored size.

    Kept apart from the blobs so the reaper can judge an entry's age without
    opening or decompressing it.
    """

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path(self, key: str) -> Path:
        return self.root / f"{validate_key(key)}{META_SUFFIX}"

    def save(
        self, key: str, size: int, created_at: datetime | None = None
    ) -> CacheEntryMetadata:
        metadata = CacheEntryMetadata(
            key=key,
            created_at=created_at or datetime.now(timezone.utc),
            size=size,
        )
        target = self.path(key)
        try:
            fd, name = tempfile.mkstemp(
                dir=self.root, prefix=f".{key}.", suffix=".meta.part"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(metadata.model_dump_json())
                os.replace(name, target)
            except BaseException:
                Path(name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise MetadataWriteError(key) from exc
        return metadata

    def load(self, key: str) -> CacheEntryMetadata:
        try:
            raw = self.path(key).read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFound(key, "Metadata not found")
        except OSError as exc:
            raise NotFound(key, "Metadata unreadable") from exc
        try:
            return CacheEntryMetadata.model_validate_json(raw)
        except ValidationError as exc:
            raise NotFound(key, "Metadata malformed") from exc

    def exists(self, key: str) -> bool:
        return self.path(key).is_file()

    def discard(self, key: str) -> bool:
        try:
            self.path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            get_logger().warning(f"Failed to remove metadata for {key}: {exc}")
            return False
        return True
