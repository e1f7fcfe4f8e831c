"""
Shared behaviour of the image-host backends (SM.MS, Lsky Pro).

Image hosts are not object stores: they pick the stored name themselves,
page their history by page number, have no folders and no signed URLs, and
delete by a host-specific handle rather than by path. Each host supplies a
page fetcher, a record-to-entry mapping and the delete call; everything
else (lookup by key, URLs, metadata, downloads) is done here by scanning
the upload history.
"""

import mimetypes
from typing import Dict, Iterator, List, Optional, Tuple

from cloudstash.constants import DEFAULT_SIGNED_URL_EXPIRY
from cloudstash.storage.base import FileInfo, ListResult, ObjectEntry
from cloudstash.storage.base_provider import BaseStorageProvider
from cloudstash.storage.errors import ErrorKind, StorageError
from cloudstash.storage.pagination import build_list_result, parse_page_token


class ImageHostProvider(BaseStorageProvider):
    """Base class for hosts addressed through their upload history."""

    # Host hooks

    def _fetch_page(self, page: int, page_size: int) -> Tuple[List[Dict], Optional[str]]:
        """Raw history records of one page plus the next page token."""
        raise NotImplementedError

    def _entry(self, record: Dict) -> ObjectEntry:
        raise NotImplementedError

    def _matches(self, record: Dict, key: str) -> bool:
        return self._entry(record).key == key

    def _delete_record(self, record: Dict) -> None:
        raise NotImplementedError

    # Lookup

    def _iter_records(self, page_size: int) -> Iterator[Dict]:
        token = None
        while True:
            records, token = self._fetch_page(parse_page_token(token), page_size)
            yield from records
            if token is None:
                return

    def _find(self, key: str) -> Dict:
        for record in self._iter_records(self.page_size):
            if self._matches(record, key):
                return record
        raise StorageError(ErrorKind.NOT_FOUND, detail=f"No such image: {key}",
                           provider=self.provider_key, status=404)

    def _image_url(self, key: str) -> str:
        url = self._entry(self._find(key)).public_url
        if not url:
            raise StorageError(ErrorKind.MALFORMED_RESPONSE,
                               detail=f"The host returned no URL for {key}",
                               provider=self.provider_key)
        return url

    # Backend hooks

    def _list(self, prefix: str, delimiter: Optional[str],
              continuation_token: Optional[str], max_keys: int) -> ListResult:
        if delimiter:
            self._logger.debug(f"{self.display_name} has no folders; delimiter ignored")
        records, next_token = self._fetch_page(parse_page_token(continuation_token), max_keys)
        entries = [self._entry(record) for record in records]
        files = [entry for entry in entries if entry.key.startswith(prefix)]
        return build_list_result(files, [], next_token)

    def _head(self, key: str) -> FileInfo:
        entry = self._entry(self._find(key))
        content_type, _ = mimetypes.guess_type(entry.key)
        return FileInfo(
            key=entry.key,
            size=entry.size,
            last_modified=entry.last_modified,
            etag=entry.etag,
            content_type=content_type,
        )

    def _open_download(self, key: str):
        return self._client.stream(self._image_url(key))

    def _delete(self, key: str) -> None:
        self._delete_record(self._find(key))

    # Public URL operations answer with the host's own image URL

    def get_public_url(self, key: str) -> Optional[str]:
        return self._call("public_url", self._image_url, key)

    def get_presigned_url(self, key: str, expires_in: int = DEFAULT_SIGNED_URL_EXPIRY) -> str:
        if expires_in <= 0:
            raise ValueError(f"expires_in must be positive, got {expires_in}")
        return self._call("presign", self._image_url, key)
