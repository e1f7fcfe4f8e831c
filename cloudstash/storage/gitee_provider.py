"""
Gitee repository used as a storage bucket.

Objects are files on one branch, written through the contents API. Every
mutation of an existing file needs its current blob sha, so updates and
deletes look the sha up first. The contents API only accepts the whole file
as base64 inside one JSON body, so uploads are not streamed. Listing reads
the recursive git tree once per call and paginates it on the client.
"""

import base64
import mimetypes
from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import GITEE_API_BASE, GITEE_WEB_BASE
from cloudstash.storage.base import FileInfo, ListResult, ObjectEntry, ProviderType
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.errors import (
    BackendResponseError, ErrorKind, MalformedResponseError, StorageError,
)
from cloudstash.storage.http_client import RestClient
from cloudstash.storage.pagination import build_list_result, paginate_sorted, partition_by_delimiter
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.urls import encode_key, join_url


class GiteeStorageProvider(BaseStorageProvider):
    """Files in a Gitee repository branch."""

    provider_type = ProviderType.GITEE
    display_name = "Gitee"
    folder_marker = ".keep"

    @property
    def bucket_name(self) -> str:
        return f"{self.config.owner}/{self.config.repo}"

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.config.owner}/{self.config.repo}"

    def _contents_path(self, key: str) -> str:
        return f"{self._repo_path}/contents/{encode_key(key)}"

    def _create_client(self):
        return RestClient(
            GITEE_API_BASE,
            self.provider_key,
            headers={'Content-Type': 'application/json;charset=UTF-8'},
            params={'access_token': self.config.access_token},
            proxy=self.config.proxy,
        )

    def _probe(self) -> None:
        # Token first, so a bad token is not reported as a missing repository
        self._client.request_json("GET", "/user")
        self._client.request_json("GET", self._repo_path)

    def _contents(self, key: str) -> Optional[Dict]:
        """Metadata of the file at key, or None when there is no such file."""
        try:
            result = self._client.request_json(
                "GET", self._contents_path(key), params={'ref': self.config.branch},
            )
        except BackendResponseError as exc:
            if exc.status == 404:
                return None
            raise
        # Gitee answers a missing path with [] and a directory with a list
        if isinstance(result, dict) and result.get("sha") and result.get("type", "file") == "file":
            return result
        return None

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> str:
        with open(local_path, "rb") as f:
            content = f.read()
        reporter.update(0, len(content))
        self._write(key, content, f"Upload file: {key}")
        reporter.update(len(content))
        return key

    def _write(self, key: str, content: bytes, message: str) -> None:
        payload = {
            'content': base64.b64encode(content).decode("ascii"),
            'message': message,
            'branch': self.config.branch,
        }
        existing = self._contents(key)
        if existing:
            payload['sha'] = existing['sha']
            self._client.request_json("PUT", self._contents_path(key), json=payload)
        else:
            self._client.request_json("POST", self._contents_path(key), json=payload)

    def _open_download(self, key: str) -> Tuple[Iterator[bytes], Optional[int]]:
        return self._client.stream(
            self._client.url(f"{self._repo_path}/raw/{encode_key(key)}"),
            params={'ref': self.config.branch},
        )

    def _delete(self, key: str) -> None:
        existing = self._contents(key)
        if existing is None:
            raise StorageError(ErrorKind.NOT_FOUND, detail=f"No such file: {key}",
                               provider=self.provider_key, status=404)
        self._client.request_json(
            "DELETE", self._contents_path(key), allow_empty=True,
            json={
                'sha': existing['sha'],
                'message': f"Delete file: {key}",
                'branch': self.config.branch,
            },
        )

    def _tree(self) -> List[Dict]:
        result = self._client.request_json(
            "GET", f"{self._repo_path}/git/trees/{self.config.branch}",
            params={'recursive': 1},
        )
        if not isinstance(result, dict):
            raise MalformedResponseError("Tree response is not an object", provider=self.provider_key)
        if result.get("truncated"):
            self._logger.warning("Gitee truncated the repository tree; some files are not listed")
        return [item for item in result.get("tree") or [] if item.get("type") == "blob"]

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        blobs, folder_keys = partition_by_delimiter(
            self._tree(), prefix, delimiter, key_of=lambda item: item["path"],
        )
        by_path = {item["path"]: item for item in blobs}
        folders = set(folder_keys)

        page_keys, next_token = paginate_sorted(
            sorted(set(by_path) | folders), continuation_token, max_keys,
        )
        files = [
            ObjectEntry(
                key=key,
                size=by_path[key].get("size") or 0,
                etag=by_path[key].get("sha"),
                public_url=self._urls.public_address(key),
            )
            for key in page_keys if key in by_path
        ]
        return build_list_result(files, [k for k in page_keys if k in folders], next_token)

    def _head(self, key: str) -> FileInfo:
        result = self._contents(key)
        if result is None:
            raise StorageError(ErrorKind.NOT_FOUND, detail=f"No such file: {key}",
                               provider=self.provider_key, status=404)
        content_type, _ = mimetypes.guess_type(key)
        return FileInfo(
            key=key,
            size=result.get("size") or 0,
            etag=result.get("sha"),
            content_type=content_type,
        )

    def _put_marker(self, key: str) -> None:
        self._write(key, b"", f"Create folder: {key.rsplit('/', 1)[0]}")

    def _default_base_url(self) -> str:
        return f"{GITEE_WEB_BASE}/{self.config.owner}/{self.config.repo}/raw/{self.config.branch}"

    def _signer(self):
        # Gitee has no signed URLs; the raw file URL is the only address
        base = self._default_base_url()
        return lambda key, expires_in: join_url(base, key)
