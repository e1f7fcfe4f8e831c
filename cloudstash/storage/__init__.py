"""
Storage provider abstraction layer for Cloud Stash.

One capability contract (StorageProviderProtocol) over S3-compatible
stores, the Chinese cloud object stores, Google Cloud Storage, a Gitee
repository and two image hosts, with frozen dataclass value types and a
single StorageError taxonomy.
"""

from cloudstash.storage.base import (
    BucketInfo,
    ConnectionResult,
    ContentPreview,
    DeleteResult,
    FileInfo,
    FolderEntry,
    ListResult,
    ObjectEntry,
    OperationResult,
    ProviderConfig,
    ProviderType,
    SearchResult,
    StorageProviderProtocol,
    StorageStats,
    UploadOutcome,
)
from cloudstash.storage.errors import ErrorKind, StorageError, TransferCancelledError
from cloudstash.storage.factory import get_storage_provider, load_storage_config

__all__ = [
    "BucketInfo",
    "ConnectionResult",
    "ContentPreview",
    "DeleteResult",
    "ErrorKind",
    "FileInfo",
    "FolderEntry",
    "ListResult",
    "ObjectEntry",
    "OperationResult",
    "ProviderConfig",
    "ProviderType",
    "SearchResult",
    "StorageError",
    "StorageProviderProtocol",
    "StorageStats",
    "TransferCancelledError",
    "UploadOutcome",
    "get_storage_provider",
    "load_storage_config",
]
