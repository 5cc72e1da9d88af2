"""
Compressed, keyed blob storage on the local filesystem.

Every key maps to ``<root>/<key>.gz``. Writes go to a hidden staging file
(``.<key>.<random>.part``) in the same directory and are published with
``os.replace``, so readers see either the previous blob or the new one, never a
partial file.
"""

import gzip
import hashlib
import os
import tempfile
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from blobcache.storage.errors import (
    CacheError,
    CorruptArtifact,
    DirectoryReadError,
    InvalidKey,
    NotFound,
    StorageWriteError,
)
from blobcache.utils.logging import get_logger

BLOB_SUFFIX = ".gz"
STAGING_SUFFIX = ".part"
# Bytes, not characters: filesystems cap names at 255 bytes and staging
# names add about 25 bytes around the key.
MAX_KEY_BYTES = 200
DEFAULT_CHUNK_SIZE = 64 * 1024

# Errors gzip raises on bad input: BadGzipFile is an OSError, truncated
# members raise EOFError and damaged deflate data raises zlib.error.
DECOMPRESS_ERRORS = (OSError, EOFError, zlib.error)

logger = get_logger()


def validate_key(key: str) -> str:
    try:
        encoded = key.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidKey(key, "Key must be valid UTF-8")
    if not encoded or len(encoded) > MAX_KEY_BYTES:
        raise InvalidKey(key, f"Key must be 1-{MAX_KEY_BYTES} bytes of UTF-8")
    if key.startswith("."):
        raise InvalidKey(key, "Key must not start with '.'")
    if any(ch in key for ch in ("/", "\\", "\x00")):
        raise InvalidKey(key, "Key must not contain path separators")
    return key


def derive_key(payload: bytes) -> str:
    """Content address of a payload: lowercase hex SHA-256."""
    return hashlib.sha256(payload).hexdigest()


class StagedBlob:
    """An in-flight write: a gzip stream into a hidden file next to its target."""

    def __init__(self, key: str, final_path: Path, compresslevel: int):
        self.key = key
        self.final_path = final_path
        fd, name = tempfile.mkstemp(
            dir=final_path.parent, prefix=f".{key}.", suffix=STAGING_SUFFIX
        )
        self.path = Path(name)
        self._raw = os.fdopen(fd, "wb")
        # Empty filename and fixed mtime keep the staging name out of the header
        self._gzip = gzip.GzipFile(
            filename="", mode="wb", fileobj=self._raw, compresslevel=compresslevel, mtime=0
        )
        self.size: int | None = None

    def write(self, chunk: bytes) -> None:
        try:
            self._gzip.write(chunk)
        except OSError as exc:
            self.discard()
            raise StorageWriteError(self.key) from exc

    def finish(self) -> int:
        """Flush the compressor and return the number of compressed bytes on disk."""
        if self.size is not None:
            return self.size
        try:
            self._gzip.close()
            self._raw.flush()
            os.fsync(self._raw.fileno())
            self.size = self._raw.tell()
            self._raw.close()
        except OSError as exc:
            self.discard()
            raise StorageWriteError(self.key) from exc
        return self.size

    def discard(self) -> None:
        for stream in (self._gzip, self._raw):
            try:
                stream.close()
            except OSError:
                logger.warning(f"Could not close staging file {self.path}")
        self.path.unlink(missing_ok=True)


class ObjectStore:
    def __init__(
        self,
        root: str | os.PathLike,
        compresslevel: int = 6,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.root = Path(root)
        self.compresslevel = compresslevel
        self.chunk_size = chunk_size
        self.root.mkdir(parents=True, exist_ok=True)

    def blob_path(self, key: str) -> Path:
        return self.root / f"{validate_key(key)}{BLOB_SUFFIX}"

    # Writing

    def stage(self, key: str) -> StagedBlob:
        final_path = self.blob_path(key)
        try:
            return StagedBlob(key, final_path, self.compresslevel)
        except OSError as exc:
            raise StorageWriteError(key, "Failed to create file") from exc

    def publish(self, staged: StagedBlob) -> int:
        size = staged.finish()
        try:
            os.replace(staged.path, staged.final_path)
        except OSError as exc:
            staged.discard()
            raise StorageWriteError(staged.key) from exc
        return size

    def put(self, key: str, chunks: Iterable[bytes]) -> int:
        """Compress ``chunks`` into the blob for ``key``, replacing any previous one.

        Returns the number of compressed bytes written.
        """
        staged = self.stage(key)
        try:
            for chunk in chunks:
                staged.write(chunk)
            return self.publish(staged)
        except BaseException:
            staged.discard()
            raise

    def put_with_derived_key(self, payload: bytes) -> Tuple[str, int]:
        key = derive_key(payload)
        return key, self.put(key, [payload])

    # Reading

    def get(self, key: str) -> Iterator[bytes]:
        """Return an iterator over the decompressed payload of ``key``.

        The first chunk is decompressed before returning, so a blob that is not
        valid gzip raises CorruptArtifact here rather than halfway through a
        response.
        """
        path = self.blob_path(key)
        try:
            raw = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFound(key)
        except OSError as exc:
            raise CacheError(key, "Failed to read file") from exc

        stream = gzip.GzipFile(fileobj=raw, mode="rb")
        try:
            first = stream.read(self.chunk_size)
        except DECOMPRESS_ERRORS as exc:
            stream.close()
            raw.close()
            raise CorruptArtifact(key) from exc
        return self._iter_chunks(key, stream, raw, first)

    def _iter_chunks(self, key, stream, raw, chunk) -> Iterator[bytes]:
        try:
            while chunk:
                yield chunk
                try:
                    chunk = stream.read(self.chunk_size)
                except DECOMPRESS_ERRORS as exc:
                    # Headers may already be sent; raising aborts the response
                    # instead of ending it as if the payload were complete.
                    logger.error(f"Error reading blob {key}: {exc}")
                    raise CorruptArtifact(key) from exc
        finally:
            stream.close()
            raw.close()

    def read(self, key: str) -> bytes:
        return b"".join(self.get(key))

    def exists(self, key: str) -> bool:
        return self.blob_path(key).is_file()

    def delete(self, key: str) -> None:
        path = self.blob_path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(key)
        except OSError as exc:
            raise StorageWriteError(key, "Failed to delete file") from exc

    def list(self) -> List[str]:
        """Logical keys of all stored blobs, sorted."""
        try:
            with os.scandir(self.root) as entries:
                names = [entry.name for entry in entries if entry.is_file()]
        except OSError as exc:
            raise DirectoryReadError() from exc
        return sorted(
            name[: -len(BLOB_SUFFIX)]
            for name in names
            if name.endswith(BLOB_SUFFIX) and not name.startswith(".")
        )

    # Housekeeping

    def blob_mtime(self, key: str) -> datetime:
        try:
            stat = self.blob_path(key).stat()
        except FileNotFoundError:
            raise NotFound(key)
        return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

    def staging_files(self) -> List[Path]:
        try:
            with os.scandir(self.root) as entries:
                return [
                    Path(entry.path)
                    for entry in entries
                    if entry.name.startswith(".")
                    and entry.name.endswith(STAGING_SUFFIX)
                    and entry.is_file()
                ]
        except OSError as exc:
            raise DirectoryReadError() from exc
