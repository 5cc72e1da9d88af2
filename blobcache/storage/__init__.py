from .errors import (
    CacheError,
    CorruptArtifact,
    DirectoryReadError,
    InvalidKey,
    MetadataWriteError,
    NotFound,
    StorageWriteError,
    UploadTimeout,
)
from .ledger import MetadataLedger
from .locks import KeyLocks
from .object_store import ObjectStore, derive_key
from .reaper import Reaper
