"""
SM.MS image host.

The v2 API wraps every answer in {"success", "code", "message", "data"} and
reports failures with HTTP 200 and success=false, so responses are checked
on the body. Images are keyed by their storage path; deletes go through the
image hash found in the upload history.
"""

import os
from typing import Dict, List, Optional, Tuple

from cloudstash.constants import SMMS_API_BASE, SMMS_PAGE_SIZE
from cloudstash.storage.base import ObjectEntry, ProviderType
from cloudstash.storage.errors import BackendResponseError
from cloudstash.storage.http_client import RestClient, looks_like_html, parse_json_response
from cloudstash.storage.image_host import ImageHostProvider
from cloudstash.storage.pagination import page_number_token
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import ProgressReader
from cloudstash.time_utilities import iso_from_any

# Codes SM.MS uses for a rejected token
_AUTH_FAILURE_CODES = ("unauthorized", "invalid_token")

# Text of the HTML page SM.MS serves after a successful delete
_DELETED_MARKERS = ("File is deleted", "File Delete")


def _checked(body):
    """Return body['data'] when the envelope reports success."""
    if not isinstance(body, dict):
        raise BackendResponseError(None, message="SM.MS returned an unexpected payload")
    if body.get("success") or body.get("code") == "success":
        return body.get("data")
    code = body.get("code")
    status = 401 if code in _AUTH_FAILURE_CODES else None
    raise BackendResponseError(status, code, body.get("message") or "SM.MS request failed")


class SmmsStorageProvider(ImageHostProvider):
    """SM.MS image hosting."""

    provider_type = ProviderType.SMMS
    display_name = "SM.MS"
    page_size = SMMS_PAGE_SIZE

    @property
    def bucket_name(self) -> Optional[str]:
        return None

    def _create_client(self):
        token = self.config.access_token
        if not token.startswith("Basic "):
            token = f"Basic {token}"
        return RestClient(
            SMMS_API_BASE,
            self.provider_key,
            headers={'Authorization': token},
            proxy=self.config.proxy,
        )

    def _probe(self) -> None:
        _checked(self._client.request_json("GET", "/upload_history"))

    def _fetch_page(self, page: int, page_size: int) -> Tuple[List[Dict], Optional[str]]:
        # The history page size is fixed by the host
        body = self._client.request_json("GET", "/upload_history", params={'page': page})
        records = _checked(body) or []
        last_page = body.get("TotalPages")
        token = page_number_token(
            body.get("CurrentPage") or page,
            int(last_page) if last_page else None,
            page_items=len(records),
            page_size=SMMS_PAGE_SIZE,
        )
        return records, token

    def _entry(self, record: Dict) -> ObjectEntry:
        key = (record.get("path") or "").lstrip("/") or record.get("storename") or record.get("hash")
        return ObjectEntry(
            key=key,
            size=int(record.get("size") or 0),
            last_modified=iso_from_any(record.get("created_at")),
            etag=record.get("hash"),
            public_url=record.get("url"),
        )

    def _matches(self, record: Dict, key: str) -> bool:
        if self._entry(record).key == key:
            return True
        return key in (record.get("filename"), record.get("storename"), record.get("hash"))

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> ObjectEntry:
        # SM.MS names the stored file itself; the requested key only supplies the filename
        filename = os.path.basename(key) or os.path.basename(local_path)
        with open(local_path, "rb") as f:
            body = self._client.request_json(
                "POST", "/upload",
                files={'smfile': (filename, ProgressReader(f, reporter), 'application/octet-stream')},
            )
        data = _checked(body) or {}
        entry = self._entry(data)
        if entry.key != key:
            self._logger.info(f"SM.MS stored {key} as {entry.key}")
        return entry

    def _delete_record(self, record: Dict) -> None:
        response = self._client.request("GET", f"/delete/{record['hash']}")
        text = response.text or ""
        if looks_like_html(text):
            if any(marker in text for marker in _DELETED_MARKERS):
                return
            raise BackendResponseError(response.status_code,
                                       message=f"SM.MS delete failed: HTTP {response.status_code}")
        _checked(parse_json_response(response, self.provider_key))
