"""
HTTP transport for the REST-based backends (Gitee, SM.MS, Lsky Pro) and for
plain URL downloads (Qiniu).

RestClient wraps one requests.Session per provider instance: pooled
connections, explicit per-session proxies, no automatic retries, and JSON
parsing that rejects HTML pages served in place of API responses.
"""

import logging
from typing import Any, Dict, Iterator, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter

from cloudstash.constants import (
    DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT,
    DOWNLOAD_CHUNK_SIZE, HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE,
)
from cloudstash.proxy_config import ProxyConfig
from cloudstash.storage.errors import BackendResponseError, MalformedResponseError


def looks_like_html(text: str) -> bool:
    head = text.lstrip()[:200].lower()
    return head.startswith("<!doctype html") or head.startswith("<html") or "<head" in head


class RestClient:
    """Session-backed JSON client bound to one API base URL."""

    def __init__(self, base_url: str, provider: str,
                 headers: Optional[Dict[str, str]] = None,
                 params: Optional[Dict[str, str]] = None,
                 proxy: Optional[ProxyConfig] = None,
                 timeout: Tuple[float, float] = (DEFAULT_CONNECT_TIMEOUT, DEFAULT_TIMEOUT_SECONDS)):
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.timeout = timeout
        self._default_params = dict(params or {})
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._session = self._setup_session(headers, proxy)

    def _setup_session(self, headers: Optional[Dict[str, str]],
                       proxy: Optional[ProxyConfig]) -> requests.Session:
        session = requests.Session()

        # No retries: retry policy belongs to the caller
        adapter = HTTPAdapter(
            max_retries=0,
            pool_connections=HTTP_POOL_CONNECTIONS,
            pool_maxsize=HTTP_POOL_MAXSIZE,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        # Ignore HTTP(S)_PROXY from the environment; only the configured proxy applies
        session.trust_env = False
        if proxy is not None and proxy.is_usable:
            session.proxies.update(proxy.as_requests_proxies())
            self._logger.info(f"{self.provider}: using proxy {proxy.masked_url}")

        session.headers.update({
            'User-Agent': DEFAULT_USER_AGENT,
            'Accept': 'application/json',
        })
        if headers:
            session.headers.update(headers)
        return session

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        params = dict(self._default_params)
        params.update(kwargs.pop("params", None) or {})
        kwargs.setdefault("timeout", self.timeout)
        self._logger.debug(f"{method} {path}")
        return self._session.request(method, self.url(path), params=params or None, **kwargs)

    def request_json(self, method: str, path: str, allow_empty: bool = False, **kwargs) -> Any:
        """
        Send a request and parse the JSON body.

        Raises:
            BackendResponseError: for HTTP status >= 400
            MalformedResponseError: when the body is HTML or not JSON
        """
        response = self.request(method, path, **kwargs)
        return parse_json_response(response, self.provider, allow_empty)

    def stream(self, url: str, **kwargs) -> Tuple[Iterator[bytes], Optional[int]]:
        """GET a URL as a chunk iterator plus its Content-Length when known."""
        response = self.request("GET", url, stream=True, **kwargs)
        if response.status_code >= 400:
            status = response.status_code
            response.close()
            raise BackendResponseError(status, message=f"Download failed: HTTP {status}")
        length = response.headers.get("Content-Length")
        return response.iter_content(DOWNLOAD_CHUNK_SIZE), int(length) if length else None

    def close(self) -> None:
        self._session.close()


def parse_json_response(response: requests.Response, provider: str,
                        allow_empty: bool = False) -> Any:
    """Parse a JSON response, classifying HTTP errors and HTML error pages."""
    text = response.text or ""
    if response.status_code >= 400:
        message = None
        if text and not looks_like_html(text):
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or body.get("msg")
        raise BackendResponseError(response.status_code, message=message or f"HTTP {response.status_code}")

    if not text.strip():
        if allow_empty:
            return None
        raise MalformedResponseError("Empty response body", provider=provider,
                                     status=response.status_code)
    if looks_like_html(text):
        raise MalformedResponseError(
            "Received an HTML page where JSON was expected", provider=provider,
            status=response.status_code,
        )
    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(f"Invalid JSON: {e}", provider=provider,
                                     status=response.status_code) from e
