from datetime import datetime, timedelta, timezone
from typing import List

from pydantic import BaseModel, Field, field_validator


class CacheEntryMetadata(BaseModel):
    """Sidecar record stored next to every blob as ``<key>.meta``."""

    key: str
    created_at: datetime
    size: int = Field(..., ge=0)  # compressed bytes on disk

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(timezone.utc)) - self.created_at

    def is_expired(self, retention: timedelta, now: datetime | None = None) -> bool:
        # Strictly older than the cutoff; an entry exactly on it survives.
        cutoff = (now or datetime.now(timezone.utc)) - retention
        return self.created_at < cutoff


class KeyListResponse(BaseModel):
    keys: List[str]
    count: int


class HashStoreResponse(BaseModel):
    hash: str
    message: str = "File stored successfully"


class HealthResponse(BaseModel):
    status: str = "ok"
