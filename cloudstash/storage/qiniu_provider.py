"""
Qiniu Kodo storage provider.

Uses the qiniu SDK. Every SDK call returns (ret, info) and never raises on
HTTP failures; _checked() converts a non-200 ResponseInfo into
BackendResponseError. Qiniu reports its own status codes, notably 612 for
"no such file". Kodo has no default public endpoint, so shareable URLs need
a custom domain; private buckets sign that domain URL.
"""

from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import MAX_BATCH_DELETE
from cloudstash.storage.base import BucketInfo, FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.errors import BackendResponseError
from cloudstash.storage.http_client import RestClient
from cloudstash.storage.pagination import build_list_result
from cloudstash.storage.progress import ProgressReporter
from cloudstash.time_utilities import iso_from_qiniu_put_time

# Lazy import: qiniu is only needed when a Qiniu provider is built
_qiniu = None

UPLOAD_TOKEN_EXPIRY = 3600

ZONE_UPLOAD_HOSTS = {
    "z0": "https://up.qiniup.com",
    "z1": "https://up-z1.qiniup.com",
    "z2": "https://up-z2.qiniup.com",
    "na0": "https://up-na0.qiniup.com",
    "as0": "https://up-as0.qiniup.com",
}

QINIU_NOT_FOUND = 612

# type field of a listed item
STORAGE_TYPES = {0: "STANDARD", 1: "INFREQUENT", 2: "ARCHIVE", 3: "DEEP_ARCHIVE"}


def _ensure_qiniu():
    global _qiniu
    if _qiniu is None:
        import qiniu

        _qiniu = qiniu


def _checked(info, ok=(200,)):
    """Raise unless the ResponseInfo status is acceptable."""
    if info is None:
        raise BackendResponseError(None, message="No response from Qiniu")
    exception = getattr(info, "exception", None)
    if exception is not None:
        raise exception
    if info.status_code not in ok:
        raise BackendResponseError(info.status_code, message=getattr(info, "error", None))
    return info


class QiniuClient:
    """Qiniu SDK objects plus a plain HTTP client for downloads."""

    def __init__(self, auth, bucket_manager, http: RestClient):
        self.auth = auth
        self.bucket_manager = bucket_manager
        self.http = http


class QiniuStorageProvider(BaseStorageProvider):
    """Qiniu Cloud Kodo object storage."""

    provider_type = ProviderType.QINIU
    display_name = "Qiniu Kodo"
    batch_limit = MAX_BATCH_DELETE

    def _create_client(self):
        _ensure_qiniu()
        if self.config.proxy is not None:
            self._logger.warning(
                "The qiniu SDK has no per-client proxy setting; API calls go direct, "
                "only downloads use the configured proxy"
            )
        auth = _qiniu.Auth(self.config.access_key_id, self.config.secret_access_key)
        http = RestClient("", self.provider_key, proxy=self.config.proxy)
        return QiniuClient(auth, _qiniu.BucketManager(auth), http)

    @property
    def _bm(self):
        return self._client.bucket_manager

    def _probe(self) -> None:
        _ret, _eof, info = self._bm.list(self.config.bucket, limit=1)
        _checked(info)

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        _ensure_qiniu()
        token = self._client.auth.upload_token(self.config.bucket, key, UPLOAD_TOKEN_EXPIRY)
        region = _qiniu.Region(up_host=ZONE_UPLOAD_HOSTS[self.config.zone])
        _ret, info = _qiniu.put_file(
            token, key, local_path,
            progress_handler=reporter.consumed_callback,
            version="v2",
            bucket_name=self.config.bucket,
            regions=[region],
        )
        _checked(info)
        return key

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        return self._client.http.stream(self._urls.resolve(key))

    def _delete(self, key: str) -> None:
        _ret, info = self._bm.delete(self.config.bucket, key)
        _checked(info, ok=(200, QINIU_NOT_FOUND))

    def _delete_batch(self, keys: List[str]) -> Tuple[List[str], Dict[str, str]]:
        _ensure_qiniu()
        ops = _qiniu.build_batch_delete(self.config.bucket, keys)
        ret, info = self._bm.batch(ops)
        # 298 means some operations in the batch failed; per-item codes follow
        _checked(info, ok=(200, 298))

        deleted: List[str] = []
        failed: Dict[str, str] = {}
        for key, item in zip(keys, ret or []):
            code = item.get("code")
            if code in (200, QINIU_NOT_FOUND):
                deleted.append(key)
            else:
                error = (item.get("data") or {}).get("error")
                failed[key] = f"code {code}: {error}" if error else f"code {code}"
        return deleted, failed

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        ret, _eof, info = self._bm.list(
            self.config.bucket,
            prefix=prefix or None,
            marker=continuation_token,
            limit=max_keys,
            delimiter=delimiter,
        )
        _checked(info)
        ret = ret or {}
        files = [
            ObjectEntry(
                key=item["key"],
                size=item.get("fsize", 0),
                last_modified=iso_from_qiniu_put_time(item.get("putTime")),
                etag=item.get("hash"),
                storage_class=STORAGE_TYPES.get(item.get("type", 0), "INFREQUENT"),
            )
            for item in ret.get("items", [])
            if not (delimiter and item["key"] == prefix)
        ]
        # An empty marker means the listing is complete
        return build_list_result(files, ret.get("commonPrefixes", []), ret.get("marker"))

    def _head(self, key: str) -> FileInfo:
        ret, info = self._bm.stat(self.config.bucket, key)
        _checked(info)
        return FileInfo(
            key=key,
            size=ret.get("fsize", 0),
            last_modified=iso_from_qiniu_put_time(ret.get("putTime")),
            etag=ret.get("hash"),
            content_type=ret.get("mimeType"),
            storage_class=STORAGE_TYPES.get(ret.get("type", 0), "INFREQUENT"),
        )

    def _put_marker(self, key: str) -> None:
        _ensure_qiniu()
        token = self._client.auth.upload_token(self.config.bucket, key, UPLOAD_TOKEN_EXPIRY)
        _ret, info = _qiniu.put_data(token, key, b"")
        _checked(info)

    def _list_buckets(self) -> List[BucketInfo]:
        ret, info = self._bm.buckets()
        _checked(info)
        return [BucketInfo(name=name) for name in (ret or [])]

    def _domain_signer(self):
        def _sign(url: str, expires_in: int) -> str:
            return self._client.auth.private_download_url(url, expires=expires_in)
        return _sign

