"""
Tencent Cloud COS storage provider.

Uses cos-python-sdk-v5 (qcloud_cos). Responses are plain dicts whose values
are strings, including IsTruncated ("true"/"false") and Size. Errors are
CosServiceError (get_status_code/get_error_code) or CosClientError for
transport problems.
"""

from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import (
    DEFAULT_TIMEOUT_SECONDS, DOWNLOAD_CHUNK_SIZE, MAX_BATCH_DELETE,
    MULTIPART_CHUNK_SIZE, TRANSFER_MAX_CONCURRENCY,
)
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.pagination import build_list_result, marker_token
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import iter_reader
from cloudstash.time_utilities import iso_from_any

# Lazy import: qcloud_cos is only needed when a COS provider is built
_CosConfig = None
_CosS3Client = None


def _ensure_cos():
    global _CosConfig, _CosS3Client
    if _CosS3Client is None:
        from qcloud_cos import CosConfig, CosS3Client

        _CosConfig = CosConfig
        _CosS3Client = CosS3Client


def _header(headers: Dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup on a COS response dict."""
    lowered = name.lower()
    for key, value in (headers or {}).items():
        if key.lower() == lowered:
            return value
    return None


def _as_list(value) -> List:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class COSStorageProvider(BaseStorageProvider):
    """Tencent Cloud Object Storage."""

    provider_type = ProviderType.COS
    display_name = "Tencent COS"
    batch_limit = MAX_BATCH_DELETE

    def _create_client(self):
        _ensure_cos()
        proxies = None
        if self.config.proxy is not None:
            self._logger.info(f"Using proxy {self.config.proxy.masked_url}")
            proxies = self.config.proxy.as_requests_proxies()

        cos_config = _CosConfig(
            Region=self.config.region,
            SecretId=self.config.access_key_id,
            SecretKey=self.config.secret_access_key,
            Scheme="https",
            Proxies=proxies,
            Timeout=DEFAULT_TIMEOUT_SECONDS,
        )
        return _CosS3Client(cos_config, retry=0)

    def _probe(self) -> None:
        self._client.head_bucket(Bucket=self.config.bucket)

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        self._client.upload_file(
            Bucket=self.config.bucket,
            Key=key,
            LocalFilePath=local_path,
            PartSize=MULTIPART_CHUNK_SIZE // (1024 * 1024),  # COS takes MB
            MAXThread=TRANSFER_MAX_CONCURRENCY,
            EnableMD5=False,
            progress_callback=reporter.consumed_callback,
        )
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        resp = self._client.get_object(Bucket=self.config.bucket, Key=key)
        length = _header(resp, "Content-Length")
        raw = resp["Body"].get_raw_stream()
        return iter_reader(raw, DOWNLOAD_CHUNK_SIZE), int(length) if length else None

    def _read_bytes(self, key: str) -> bytes:
        resp = self._client.get_object(Bucket=self.config.bucket, Key=key)
        return resp["Body"].get_raw_stream().read()

    def _delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.config.bucket, Key=key)

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], Dict[str, str]]:
        resp = self._client.delete_objects(
            Bucket=self.config.bucket,
            Delete={"Object": [{"Key": k} for k in keys], "Quiet": "false"},
        )
        deleted = [d["Key"] for d in _as_list(resp.get("Deleted"))]
        failed = {
            e["Key"]: f"{e.get('Code', 'Error')}: {e.get('Message', '')}".strip()
            for e in _as_list(resp.get("Error"))
        }
        return deleted, failed

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        params = {
            "Bucket": self.config.bucket,
            "Prefix": prefix,
            "Marker": continuation_token or "",
            "MaxKeys": max_keys,
        }
        if delimiter:
            params["Delimiter"] = delimiter
        resp = self._client.list_objects(**params)

        contents = _as_list(resp.get("Contents"))
        files = [
            ObjectEntry(
                key=obj["Key"],
                size=int(obj.get("Size") or 0),
                last_modified=iso_from_any(obj.get("LastModified")),
                etag=(obj.get("ETag") or "").strip('"') or None,
                storage_class=obj.get("StorageClass") or "STANDARD",
            )
            for obj in contents
            if not (delimiter and obj["Key"] == prefix)
        ]
        folders = [p["Prefix"] for p in _as_list(resp.get("CommonPrefixes"))]
        token = marker_token(
            resp.get("IsTruncated", "false"), resp.get("NextMarker"),
            [o["Key"] for o in contents] + folders,
        )
        return build_list_result(files, folders, token)

    def _head(self, key: str) -> FileInfo:
        resp = self._client.head_object(Bucket=self.config.bucket, Key=key)
        return FileInfo(
            key=key,
            size=int(_header(resp, "Content-Length") or 0),
            last_modified=iso_from_any(_header(resp, "Last-Modified")),
            etag=(_header(resp, "ETag") or "").strip('"') or None,
            content_type=_header(resp, "Content-Type"),
            storage_class=_header(resp, "x-cos-storage-class") or "STANDARD",
        )

    def _put_marker(self, key: str) -> None:
        self._client.put_object(Bucket=self.config.bucket, Body=b"", Key=key)

    def _list_buckets(self) -> List[BucketInfo]:
        resp = self._client.list_buckets()
        buckets = (resp.get("Buckets") or {}).get("Bucket")
        return [
            BucketInfo(name=b["Name"], region=b.get("Location"),
                       creation_date=iso_from_any(b.get("CreationDate")))
            for b in _as_list(buckets)
        ]

    def _default_base_url(self) -> str:
        return f"https://{self.config.bucket}.cos.{self.config.region}.myqcloud.com"

    def _signer(self):
        def _sign(key: str, expires_in: int) -> str:
            return self._client.get_presigned_download_url(
                Bucket=self.config.bucket, Key=key, Expired=expires_in,
            )
        return _sign
