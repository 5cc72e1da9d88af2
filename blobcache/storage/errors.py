from fastapi import status


class CacheError(Exception):
    """Base class for storage failures. `message` is safe to show to clients."""

    message = "Cache operation failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, key: str | None = None, message: str | None = None):
        self.key = key
        if message is not None:
            self.message = message
        super().__init__(f"{self.message} (key={key!r})" if key else self.message)


class NotFound(CacheError):
    message = "File not found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidKey(CacheError):
    message = "Invalid cache key"
    status_code = status.HTTP_400_BAD_REQUEST


class StorageWriteError(CacheError):
    message = "Failed to write file"


class MetadataWriteError(CacheError):
    message = "Failed to save metadata"


class CorruptArtifact(CacheError):
    message = "Failed to decompress file"


class DirectoryReadError(CacheError):
    message = "Failed to read cache directory"


class UploadTimeout(CacheError):
    message = "Upload timed out"
    status_code = status.HTTP_408_REQUEST_TIMEOUT
