"""
Huawei Cloud OBS storage provider.

Uses esdk-obs-python. The SDK does not raise on HTTP failures; every call
returns a response object with status/errorCode/errorMessage and a body.
_checked() turns non-2xx responses into BackendResponseError so they reach
the shared error funnel like every other backend's exceptions.
"""

import re
from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import (
    DEFAULT_TIMEOUT_SECONDS, DOWNLOAD_CHUNK_SIZE, MAX_BATCH_DELETE,
    MULTIPART_CHUNK_SIZE, OBS_MULTIPART_THRESHOLD, TRANSFER_MAX_CONCURRENCY,
)
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.errors import BackendResponseError
from cloudstash.storage.pagination import build_list_result, marker_token
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import iter_reader
from cloudstash.time_utilities import iso_from_any

# Lazy import: the obs SDK is only needed when an OBS provider is built
_obs = None


def _ensure_obs():
    global _obs
    if _obs is None:
        import obs

        _obs = obs


def _checked(resp):
    """Raise BackendResponseError unless the OBS response is a 2xx."""
    status = getattr(resp, "status", None)
    if status is None or status >= 300:
        raise BackendResponseError(
            status,
            getattr(resp, "errorCode", None),
            getattr(resp, "errorMessage", None),
        )
    return resp


class OBSStorageProvider(BaseStorageProvider):
    """Huawei Cloud Object Storage Service."""

    provider_type = ProviderType.OBS
    display_name = "Huawei OBS"
    batch_limit = MAX_BATCH_DELETE

    @property
    def server_host(self) -> str:
        return re.sub(r"^https?://", "", self.config.endpoint).rstrip("/")

    def _create_client(self):
        _ensure_obs()
        kwargs = {}
        if self.config.proxy is not None:
            host, port, username, password = self.config.proxy.components()
            self._logger.info(f"Using proxy {self.config.proxy.masked_url}")
            kwargs.update(proxy_host=host, proxy_port=port,
                          proxy_username=username, proxy_password=password)

        return _obs.ObsClient(
            access_key_id=self.config.access_key_id,
            secret_access_key=self.config.secret_access_key,
            server=self.config.endpoint,
            timeout=DEFAULT_TIMEOUT_SECONDS,
            max_retry_count=0,
            **kwargs
        )

    def _probe(self) -> None:
        _checked(self._client.headBucket(self.config.bucket))

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        if reporter.total > OBS_MULTIPART_THRESHOLD:
            resp = self._client.uploadFile(
                self.config.bucket, key, local_path,
                partSize=MULTIPART_CHUNK_SIZE,
                taskNum=TRANSFER_MAX_CONCURRENCY,
                enableCheckpoint=False,
                progressCallback=reporter.obs_callback,
            )
        else:
            resp = self._client.putFile(
                self.config.bucket, key, local_path,
                progressCallback=reporter.obs_callback,
            )
        _checked(resp)
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        resp = _checked(self._client.getObject(self.config.bucket, key, loadStreamInMemory=False))
        body = resp.body
        length = getattr(body, "contentLength", None) or getattr(body, "size", None)
        return iter_reader(body.response, DOWNLOAD_CHUNK_SIZE), int(length) if length else None

    def _read_bytes(self, key: str) -> bytes:
        resp = _checked(self._client.getObject(self.config.bucket, key, loadStreamInMemory=True))
        return resp.body.buffer or b""

    def _delete(self, key: str) -> None:
        _checked(self._client.deleteObject(self.config.bucket, key))

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], Dict[str, str]]:
        _ensure_obs()
        request = _obs.DeleteObjectsRequest(
            quiet=False,
            objects=[_obs.Object(key=k) for k in keys],
        )
        resp = _checked(self._client.deleteObjects(self.config.bucket, request))
        deleted = [item.key for item in (resp.body.deleted or [])]
        failed = {
            item.key: f"{item.code}: {item.message}"
            for item in (resp.body.error or [])
        }
        return deleted, failed

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        resp = _checked(self._client.listObjects(
            self.config.bucket,
            prefix=prefix or None,
            marker=continuation_token,
            max_keys=max_keys,
            delimiter=delimiter,
        ))
        body = resp.body
        contents = body.contents or []
        files = [
            ObjectEntry(
                key=obj.key,
                size=int(obj.size or 0),
                last_modified=iso_from_any(obj.lastModified),
                etag=(obj.etag or "").strip('"') or None,
                storage_class=obj.storageClass or "STANDARD",
            )
            for obj in contents
            if not (delimiter and obj.key == prefix)
        ]
        # The SDK spells it commonPrefixs
        folders = [p.prefix for p in (body.commonPrefixs or [])]
        token = marker_token(body.is_truncated, body.next_marker, [o.key for o in contents] + folders)
        return build_list_result(files, folders, token)

    def _head(self, key: str) -> FileInfo:
        resp = _checked(self._client.getObjectMetadata(self.config.bucket, key))
        body = resp.body
        return FileInfo(
            key=key,
            size=int(body.contentLength or 0),
            last_modified=iso_from_any(body.lastModified),
            etag=(body.etag or "").strip('"') or None,
            content_type=body.contentType,
            storage_class=body.storageClass or "STANDARD",
        )

    def _put_marker(self, key: str) -> None:
        _checked(self._client.putContent(self.config.bucket, key, content=""))

    def _list_buckets(self) -> List[BucketInfo]:
        resp = _checked(self._client.listBuckets(True))
        return [
            BucketInfo(name=b.name, region=getattr(b, "location", None),
                       creation_date=iso_from_any(b.create_date))
            for b in (resp.body.buckets or [])
        ]

    def _default_base_url(self) -> str:
        return f"https://{self.config.bucket}.{self.server_host}"

    def _signer(self):
        def _sign(key: str, expires_in: int) -> str:
            result = self._client.createSignedUrl(
                "GET", bucketName=self.config.bucket, objectKey=key, expires=expires_in,
            )
            return result.signedUrl
        return _sign
