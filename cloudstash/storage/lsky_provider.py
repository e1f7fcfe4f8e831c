"""
Lsky Pro image host (self-hosted, API v1).

Responses use the {"status", "message", "data"} envelope. Images are keyed
by their pathname on the server; deletes use the image key Lsky assigns,
looked up from the image list. Lsky reports image sizes in KiB.
"""

import os
from typing import Dict, List, Optional, Tuple

from cloudstash.constants import LSKY_MAX_PER_PAGE
from cloudstash.storage.base import ObjectEntry, ProviderType
from cloudstash.storage.errors import BackendResponseError
from cloudstash.storage.http_client import RestClient
from cloudstash.storage.image_host import ImageHostProvider
from cloudstash.storage.pagination import page_number_token
from cloudstash.storage.progress import ProgressReporter
from cloudstash.storage.transfer import ProgressReader
from cloudstash.time_utilities import iso_from_any


def _checked(body):
    """Return body['data'] when the envelope reports success."""
    if not isinstance(body, dict):
        raise BackendResponseError(None, message="Lsky Pro returned an unexpected payload")
    if not body.get("status"):
        raise BackendResponseError(None, message=body.get("message") or "Lsky Pro request failed")
    return body.get("data")


def _kib_to_bytes(size) -> int:
    try:
        return int(round(float(size) * 1024))
    except (TypeError, ValueError):
        return 0


class LskyStorageProvider(ImageHostProvider):
    """Lsky Pro image hosting."""

    provider_type = ProviderType.LSKY
    display_name = "Lsky Pro"
    page_size = LSKY_MAX_PER_PAGE

    @property
    def bucket_name(self) -> Optional[str]:
        return None

    def _create_client(self):
        token = self.config.access_token
        if not token.startswith("Bearer "):
            token = f"Bearer {token}"
        return RestClient(
            f"{self.config.api_url}/api/v1",
            self.provider_key,
            headers={'Authorization': token},
            proxy=self.config.proxy,
        )

    def _probe(self) -> None:
        _checked(self._client.request_json("GET", "/profile"))

    def _fetch_page(self, page: int, page_size: int) -> Tuple[List[Dict], Optional[str]]:
        # Oldest first, so uploads made while paging do not shift later pages
        body = self._client.request_json("GET", "/images", params={
            'page': page,
            'per_page': min(page_size, LSKY_MAX_PER_PAGE),
            'order': 'earliest',
        })
        data = _checked(body) or {}
        records = data.get("data") or []
        token = page_number_token(
            int(data.get("current_page") or page),
            int(data.get("last_page") or 1),
        )
        return records, token

    def _entry(self, record: Dict) -> ObjectEntry:
        links = record.get("links") or {}
        return ObjectEntry(
            key=(record.get("pathname") or record.get("name") or record.get("key") or "").lstrip("/"),
            size=_kib_to_bytes(record.get("size")),
            last_modified=iso_from_any(record.get("date")),
            etag=record.get("md5"),
            public_url=links.get("url"),
        )

    def _matches(self, record: Dict, key: str) -> bool:
        return self._entry(record).key == key or key == record.get("key")

    def _upload(self, local_path: str, key: str, reporter: ProgressReporter) -> ObjectEntry:
        filename = os.path.basename(key) or os.path.basename(local_path)
        with open(local_path, "rb") as f:
            body = self._client.request_json(
                "POST", "/upload",
                files={'file': (filename, ProgressReader(f, reporter))},
            )
        data = _checked(body) or {}
        entry = self._entry(data)
        if entry.key != key:
            self._logger.info(f"Lsky Pro stored {key} as {entry.key}")
        return entry

    def _delete_record(self, record: Dict) -> None:
        _checked(self._client.request_json("DELETE", f"/images/{record['key']}"))
