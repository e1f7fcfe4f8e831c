"""
Core abstractions for storage providers.

Defines the StorageProviderProtocol that all storage backends must implement,
along with the dataclass value types they exchange. Every result type has a
to_dict() that yields the camelCase shape consumed by UI and IPC layers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar, runtime_checkable

from cloudstash.proxy_config import ProxyConfig

T = TypeVar("T")

# (percent, transferred_bytes, total_bytes, bytes_per_second)
ProgressCallback = Callable[[int, int, int, float], None]


class ProviderType(Enum):
    """Supported storage provider types."""
    S3 = "s3"
    R2 = "r2"
    JDCLOUD = "jdcloud"
    OSS = "oss"
    COS = "cos"
    OBS = "obs"
    QINIU = "qiniu"
    GCS = "gcs"
    GITEE = "gitee"
    SMMS = "smms"
    LSKY = "lsky"


@dataclass(frozen=True)
class ProviderConfig:
    """
    Configuration for one provider instance.

    Fields are opaque per backend; which ones are required is decided by
    cloudstash.storage.config.REQUIRED_FIELDS.
    """
    provider: ProviderType
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    account_id: Optional[str] = None  # Cloudflare R2
    access_token: Optional[str] = None  # Gitee, SM.MS, Lsky Pro
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint: Optional[str] = None
    public_domain: Optional[str] = None
    is_private: bool = False
    owner: Optional[str] = None  # Gitee
    repo: Optional[str] = None  # Gitee
    branch: Optional[str] = None  # Gitee
    zone: Optional[str] = None  # Qiniu
    project_id: Optional[str] = None  # GCS
    credentials_json: Optional[str] = None  # GCS service account JSON text
    key_filename: Optional[str] = None  # GCS service account JSON path
    api_url: Optional[str] = None  # Lsky Pro
    force_path_style: bool = False
    storage_class: Optional[str] = None
    proxy: Optional[ProxyConfig] = None

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return (
            f"ProviderConfig(provider={self.provider.value}, bucket={self.bucket!r}, "
            f"region={self.region!r}, endpoint={self.endpoint!r}, "
            f"public_domain={self.public_domain!r}, is_private={self.is_private})"
        )


@dataclass(frozen=True)
class ObjectEntry:
    """One object in a listing."""
    key: str
    size: int = 0
    last_modified: Optional[str] = None  # ISO 8601 timestamp
    etag: Optional[str] = None
    storage_class: str = "STANDARD"
    public_url: Optional[str] = None  # filled by hosts that address images directly

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'Key': self.key,
            'Size': self.size,
            'LastModified': self.last_modified,
            'ETag': self.etag,
            'StorageClass': self.storage_class,
        }
        if self.public_url:
            data['url'] = self.public_url
        return data


@dataclass(frozen=True)
class FolderEntry:
    """A common prefix, shown as a folder."""
    key: str
    is_folder: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {'Key': self.key, 'isFolder': True}


@dataclass(frozen=True)
class ListResult:
    """One page of a listing. is_truncated is derived from the continuation token."""
    files: List[ObjectEntry] = field(default_factory=list)
    folders: List[FolderEntry] = field(default_factory=list)
    next_continuation_token: Optional[str] = None

    @property
    def is_truncated(self) -> bool:
        return self.next_continuation_token is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'files': [f.to_dict() for f in self.files],
            'folders': [f.to_dict() for f in self.folders],
            'nextContinuationToken': self.next_continuation_token,
            'isTruncated': self.is_truncated,
        }


@dataclass(frozen=True)
class UploadOutcome:
    """Where an upload landed. url is None unless the object is publicly addressable."""
    key: str
    bucket: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'key': self.key, 'bucket': self.bucket, 'url': self.url}


@dataclass(frozen=True)
class FileInfo:
    """Normalized object metadata."""
    key: str
    size: int = 0
    last_modified: Optional[str] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    storage_class: str = "STANDARD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'Key': self.key,
            'Size': self.size,
            'LastModified': self.last_modified,
            'ETag': self.etag,
            'ContentType': self.content_type,
            'StorageClass': self.storage_class,
        }


@dataclass(frozen=True)
class ContentPreview:
    """Size-gated inline preview of an object."""
    size: int
    too_large: bool = False
    content: Optional[str] = None
    content_type: Optional[str] = None
    is_binary: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'size': self.size,
            'tooLarge': self.too_large,
            'contentType': self.content_type,
            'isBinary': self.is_binary,
        }


@dataclass(frozen=True)
class SearchResult:
    files: List[ObjectEntry] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {'files': [f.to_dict() for f in self.files], 'total': self.total}


@dataclass(frozen=True)
class DeleteResult:
    """
    Outcome of a multi-key delete.

    deleted holds only keys the backend confirmed; failed maps every other
    requested key to a reason. success is False only when nothing could be
    deleted at all.
    """
    success: bool = True
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.deleted) and bool(self.failed)

    def summary(self) -> str:
        """Human-readable summary of the delete result."""
        parts = [f"{len(self.deleted)} deleted"]
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'deleted': list(self.deleted), 'failed': dict(self.failed)}


@dataclass(frozen=True)
class StorageStats:
    total_count: int = 0
    total_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {'totalCount': self.total_count, 'totalSize': self.total_size}


@dataclass(frozen=True)
class BucketInfo:
    name: str
    region: Optional[str] = None
    creation_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'Name': self.name, 'Region': self.region, 'CreationDate': self.creation_date}


@dataclass(frozen=True)
class ConnectionResult:
    """Outcome of a connection probe. Never raised, always returned."""
    success: bool
    message: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'success': self.success}
        if self.success:
            data['message'] = self.message
        else:
            data['error'] = self.error or self.message
        return data


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Result of a provider operation following the Result pattern.

    Mutations raise StorageError instead of returning success=False, so a
    returned OperationResult is normally a success.
    """
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success}
        if self.data is not None:
            if isinstance(self.data, list):
                result['data'] = [item.to_dict() if hasattr(item, 'to_dict') else item
                                  for item in self.data]
            elif hasattr(self.data, 'to_dict'):
                result['data'] = self.data.to_dict()
            else:
                result['data'] = self.data
        if self.error:
            result['error'] = self.error
        if self.message:
            result['message'] = self.message
        return result


@runtime_checkable
class StorageProviderProtocol(Protocol):
    """Protocol that all storage backends must implement."""

    def test_connection(self) -> ConnectionResult:
        """Probe the backend cheaply. Never raises."""
        ...

    def upload_file(self, local_path: str, key: str,
                    on_progress: Optional[ProgressCallback] = None,
                    cancel_event=None) -> "OperationResult[UploadOutcome]":
        """Stream a local file to the given key."""
        ...

    def download_file(self, key: str, local_path: str,
                      on_progress: Optional[ProgressCallback] = None,
                      cancel_event=None) -> OperationResult:
        """Stream an object to a local path."""
        ...

    def delete_file(self, key: str) -> OperationResult:
        """Delete one object. Deleting a missing key succeeds."""
        ...

    def delete_files(self, keys: List[str]) -> DeleteResult:
        """Delete many objects, batching where the backend allows."""
        ...

    def list_files(self, prefix: str = "", delimiter: Optional[str] = None,
                   continuation_token: Optional[str] = None,
                   max_keys: int = 1000) -> "OperationResult[ListResult]":
        """Return one page of objects (and folders when a delimiter is given)."""
        ...

    def search_files(self, term: str, prefix: str = "",
                     max_keys: int = 1000) -> "OperationResult[SearchResult]":
        """Case-insensitive substring search over every key."""
        ...

    def get_presigned_url(self, key: str, expires_in: int = 900) -> str:
        """Time-limited read URL."""
        ...

    def get_public_url(self, key: str) -> Optional[str]:
        """Best shareable URL: custom domain, default endpoint, then signed."""
        ...

    def file_exists(self, key: str) -> bool:
        """False for not found; other errors propagate."""
        ...

    def get_file_info(self, key: str) -> "OperationResult[FileInfo]":
        ...

    def get_file_content(self, key: str, max_size: int = 1048576) -> "OperationResult[ContentPreview]":
        ...

    def get_provider_name(self) -> str:
        """Return the human-readable provider name."""
        ...
