"""
S3-compatible storage providers.

Amazon S3, Cloudflare R2 and JD Cloud OSS all speak the S3 API, so they share
one boto3-based implementation and differ only in endpoint, region and
default public addressing. Credentials come from the provider config, not
the boto3 credential chain, so several providers can coexist in one process.
"""

import mimetypes
from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import (
    DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT_SECONDS, DOWNLOAD_CHUNK_SIZE,
    MAX_BATCH_DELETE, MULTIPART_CHUNK_SIZE, MULTIPART_THRESHOLD,
    TRANSFER_MAX_CONCURRENCY, VALID_S3_STORAGE_CLASSES,
)
from cloudstash.config_validator import ConfigValidationError
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.pagination import build_list_result
from cloudstash.storage.progress import ProgressReporter

# Lazy import: boto3 is only needed once an S3-family provider is built
_boto3 = None
_botocore_config = None
_TransferConfig = None


def _ensure_boto3():
    global _boto3, _botocore_config, _TransferConfig
    if _boto3 is None:
        import boto3
        import botocore.config
        from boto3.s3.transfer import TransferConfig

        _boto3 = boto3
        _botocore_config = botocore.config
        _TransferConfig = TransferConfig


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else etag


class S3CompatibleProvider(BaseStorageProvider):
    """Shared boto3 implementation for S3-speaking backends."""

    batch_limit = MAX_BATCH_DELETE

    def __init__(self, config, client=None):
        self._transfer_config = None
        super().__init__(config, client)

    def _endpoint_url(self) -> Optional[str]:
        return self.config.endpoint

    def _region(self) -> Optional[str]:
        return self.config.region

    def _create_client(self):
        _ensure_boto3()
        proxies = self.config.proxy.as_requests_proxies() if self.config.proxy else {}
        if proxies:
            self._logger.info(f"Using proxy {self.config.proxy.masked_url}")

        client_config = _botocore_config.Config(
            signature_version="s3v4",
            # One attempt only: retry policy belongs to the caller
            retries={"mode": "standard", "max_attempts": 1},
            s3={"addressing_style": "path" if self.config.force_path_style else "auto"},
            proxies=proxies or None,
            connect_timeout=DEFAULT_CONNECT_TIMEOUT,
            read_timeout=DEFAULT_TIMEOUT_SECONDS,
        )
        session = _boto3.session.Session(
            aws_access_key_id=self.config.access_key_id,
            aws_secret_access_key=self.config.secret_access_key,
            region_name=self._region(),
        )
        return session.client("s3", endpoint_url=self._endpoint_url(), config=client_config)

    @property
    def transfer_config(self):
        if self._transfer_config is None:
            _ensure_boto3()
            self._transfer_config = _TransferConfig(
                multipart_threshold=MULTIPART_THRESHOLD,
                multipart_chunksize=MULTIPART_CHUNK_SIZE,
                max_concurrency=TRANSFER_MAX_CONCURRENCY,
            )
        return self._transfer_config

    def _probe(self) -> None:
        self._client.head_bucket(Bucket=self.config.bucket)

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        extra_args: Dict = {}
        content_type, _ = mimetypes.guess_type(key)
        if content_type:
            extra_args["ContentType"] = content_type
        if self.config.storage_class:
            extra_args["StorageClass"] = self.config.storage_class.upper()

        self._client.upload_file(
            local_path, self.config.bucket, key,
            ExtraArgs=extra_args or None,
            Callback=reporter.boto3_callback,
            Config=self.transfer_config,
        )
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        resp = self._client.get_object(Bucket=self.config.bucket, Key=key)
        return resp["Body"].iter_chunks(DOWNLOAD_CHUNK_SIZE), resp.get("ContentLength")

    def _read_bytes(self, key: str) -> bytes:
        resp = self._client.get_object(Bucket=self.config.bucket, Key=key)
        return resp["Body"].read()

    def _delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.config.bucket, Key=key)

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], Dict[str, str]]:
        resp = self._client.delete_objects(
            Bucket=self.config.bucket,
            Delete={"Objects": [{"Key": k} for k in keys], "Quiet": False},
        )
        deleted = [d["Key"] for d in resp.get("Deleted", [])]
        failed = {
            e["Key"]: f"{e.get('Code', 'Error')}: {e.get('Message', '')}".strip()
            for e in resp.get("Errors", [])
        }
        return deleted, failed

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        params = {"Bucket": self.config.bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if delimiter:
            params["Delimiter"] = delimiter
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        resp = self._client.list_objects_v2(**params)

        files = [
            ObjectEntry(
                key=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=_iso(obj.get("LastModified")),
                etag=_strip_etag(obj.get("ETag")),
                storage_class=obj.get("StorageClass") or "STANDARD",
            )
            for obj in resp.get("Contents", [])
            # The folder's own marker object is not a child of the folder
            if not (delimiter and obj["Key"] == prefix)
        ]
        folders = [p["Prefix"] for p in resp.get("CommonPrefixes", [])]
        token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return build_list_result(files, folders, token)

    def _head(self, key: str) -> FileInfo:
        resp = self._client.head_object(Bucket=self.config.bucket, Key=key)
        return FileInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            last_modified=_iso(resp.get("LastModified")),
            etag=_strip_etag(resp.get("ETag")),
            content_type=resp.get("ContentType"),
            storage_class=resp.get("StorageClass") or "STANDARD",
        )

    def _put_marker(self, key: str) -> None:
        self._client.put_object(Bucket=self.config.bucket, Key=key, Body=b"")

    def _list_buckets(self) -> List[BucketInfo]:
        resp = self._client.list_buckets()
        return [
            BucketInfo(name=b["Name"], region=self._region(), creation_date=_iso(b.get("CreationDate")))
            for b in resp.get("Buckets", [])
        ]

    def _signer(self):
        def _sign(key: str, expires_in: int) -> str:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.config.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        return _sign


class S3StorageProvider(S3CompatibleProvider):
    """Amazon S3, or any S3 endpoint given explicitly."""

    provider_type = ProviderType.S3
    display_name = "Amazon S3"

    def __init__(self, config, client=None):
        storage_class = (config.storage_class or "").strip().upper()
        if storage_class and storage_class not in VALID_S3_STORAGE_CLASSES:
            raise ConfigValidationError(
                f"Invalid storage class '{storage_class}'",
                [f"Use one of: {', '.join(sorted(VALID_S3_STORAGE_CLASSES))}"]
            )
        super().__init__(config, client)

    def _default_base_url(self) -> Optional[str]:
        if self.config.endpoint:
            return f"{self.config.endpoint.rstrip('/')}/{self.config.bucket}"
        region = self.config.region or "us-east-1"
        return f"https://{self.config.bucket}.s3.{region}.amazonaws.com"


class R2StorageProvider(S3CompatibleProvider):
    """Cloudflare R2 through its account-scoped S3 endpoint."""

    provider_type = ProviderType.R2
    display_name = "Cloudflare R2"

    def _endpoint_url(self) -> str:
        return f"https://{self.config.account_id}.r2.cloudflarestorage.com"

    def _region(self) -> str:
        return "auto"

    def _default_base_url(self) -> str:
        return f"{self._endpoint_url()}/{self.config.bucket}"


class JDCloudStorageProvider(S3CompatibleProvider):
    """JD Cloud OSS through its regional S3 endpoint."""

    provider_type = ProviderType.JDCLOUD
    display_name = "JD Cloud OSS"

    def _endpoint_url(self) -> str:
        if self.config.endpoint:
            return self.config.endpoint
        return f"https://s3.{self.config.region}.jdcloud-oss.com"

    def _default_base_url(self) -> str:
        return f"{self._endpoint_url().rstrip('/')}/{self.config.bucket}"
