"""
Network proxy settings for storage transports.

A ProxyConfig is handed explicitly to each provider's transport client
(requests sessions, boto3, vendor SDK clients). Nothing here touches
os.environ, so building a provider without a proxy after one with a proxy
leaves no leftover proxy state in the process.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import requests

from cloudstash.constants import PROXY_TEST_URL, PROXY_TEST_TIMEOUT

logger = logging.getLogger(__name__)

_PASSWORD_PATTERN = re.compile(r":[^:@/]+@")


def mask_proxy_url(url: str) -> str:
    """Hide the password component of a proxy URL for logging."""
    return _PASSWORD_PATTERN.sub(":****@", url)


@dataclass(frozen=True)
class ProxyConfig:
    """Proxy settings: either a full url, or host/port plus optional credentials."""
    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    protocol: str = "http"
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def proxy_url(self) -> Optional[str]:
        """Full proxy URL, or None when the settings do not describe a proxy."""
        if self.url:
            return self.url.strip()
        if self.host and self.port:
            auth = ""
            if self.username and self.password:
                auth = f"{self.username}:{self.password}@"
            return f"{self.protocol or 'http'}://{auth}{self.host}:{self.port}"
        return None

    @property
    def is_usable(self) -> bool:
        return self.proxy_url is not None

    @property
    def masked_url(self) -> str:
        url = self.proxy_url
        return mask_proxy_url(url) if url else "<none>"

    def as_requests_proxies(self) -> Dict[str, str]:
        """Proxy mapping accepted by requests, botocore, oss2 and cos-python-sdk."""
        url = self.proxy_url
        if not url:
            return {}
        return {"http": url, "https": url}

    def components(self) -> Tuple[Optional[str], Optional[int], Optional[str], Optional[str]]:
        """Split into (host, port, username, password) for SDKs that take them separately."""
        url = self.proxy_url
        if not url:
            return None, None, None, None
        parsed = urlparse(url)
        return parsed.hostname, parsed.port, parsed.username, parsed.password

    def __repr__(self) -> str:
        return f"ProxyConfig({self.masked_url})"


def proxy_from_settings(values: Dict[str, Any]) -> Optional[ProxyConfig]:
    """
    Build a ProxyConfig from a flat settings mapping.

    Returns None when the proxy is disabled or the settings are incomplete.
    """
    enabled = str(values.get("enabled", "false")).strip().lower() in ("1", "true", "yes", "on")
    if not enabled:
        return None

    port = values.get("port")
    try:
        port = int(port) if port not in (None, "") else None
    except ValueError:
        logger.warning(f"Ignoring invalid proxy port '{port}'")
        port = None

    proxy = ProxyConfig(
        url=(values.get("url") or "").strip() or None,
        host=(values.get("host") or "").strip() or None,
        port=port,
        protocol=(values.get("protocol") or "http").strip() or "http",
        username=(values.get("username") or "").strip() or None,
        password=values.get("password") or None,
    )
    if not proxy.is_usable:
        logger.warning("Proxy is enabled but neither url nor host/port is set; ignoring it")
        return None
    return proxy


def test_proxy_connection(proxy: Optional[ProxyConfig],
                          test_url: str = PROXY_TEST_URL,
                          timeout: int = PROXY_TEST_TIMEOUT) -> Dict[str, Any]:
    """
    Send one HEAD request through the proxy.

    Returns:
        Dict with 'success' and either 'message' or 'error'.
    """
    if proxy is None or not proxy.is_usable:
        return {"success": False, "error": "Proxy configuration is invalid"}

    logger.info(f"Testing proxy connection via {proxy.masked_url}")
    try:
        response = requests.head(
            test_url,
            proxies=proxy.as_requests_proxies(),
            timeout=timeout,
            allow_redirects=False,
        )
    except requests.exceptions.Timeout:
        return {"success": False, "error": "Proxy connection timed out"}
    except requests.exceptions.RequestException as e:
        logger.warning(f"Proxy test failed: {e}")
        return {"success": False, "error": f"Proxy connection failed: {e}"}

    if 200 <= response.status_code < 400:
        return {"success": True, "message": "Proxy connection test succeeded"}
    return {"success": False, "error": f"Proxy returned status code {response.status_code}"}
