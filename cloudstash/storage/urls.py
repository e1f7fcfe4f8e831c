"""
URL resolution for stored objects.

Resolution order per call:
  1. custom public domain (always wins, even for private buckets)
  2. the backend's default public endpoint, unless the bucket is private
  3. a time-limited signed URL
"""

from typing import Callable, Optional
from urllib.parse import quote

from cloudstash.constants import DEFAULT_SIGNED_URL_EXPIRY
from cloudstash.storage.errors import ErrorKind, StorageError

# signer(key, expires_in) -> url
KeySigner = Callable[[str, int], str]
# domain_signer(unsigned_url, expires_in) -> url
UrlSigner = Callable[[str, int], str]


def encode_key(key: str) -> str:
    """Percent-encode every reserved character except the path separator."""
    return quote(key, safe="/")


def join_url(base: str, key: str) -> str:
    return f"{base.rstrip('/')}/{encode_key(key.lstrip('/'))}"


class UrlResolver:
    """Decides which URL to hand out for a key."""

    def __init__(self, public_domain: Optional[str] = None,
                 default_base: Optional[str] = None,
                 is_private: bool = False,
                 signer: Optional[KeySigner] = None,
                 domain_signer: Optional[UrlSigner] = None,
                 provider: Optional[str] = None):
        self.public_domain = public_domain
        self.default_base = default_base
        self.is_private = is_private
        self._signer = signer
        self._domain_signer = domain_signer
        self._provider = provider

    def public_address(self, key: str) -> Optional[str]:
        """URL reachable without a signature, or None when only signing would work."""
        if self.public_domain:
            url = join_url(self.public_domain, key)
            if self.is_private and self._domain_signer is not None:
                return None
            return url
        if self.default_base and not self.is_private:
            return join_url(self.default_base, key)
        return None

    def resolve(self, key: str, expires_in: int = DEFAULT_SIGNED_URL_EXPIRY) -> str:
        """Best shareable URL for the key."""
        if self.public_domain:
            url = join_url(self.public_domain, key)
            if self.is_private and self._domain_signer is not None:
                return self._domain_signer(url, expires_in)
            return url
        if self.default_base and not self.is_private:
            return join_url(self.default_base, key)
        return self.signed(key, expires_in)

    def signed(self, key: str, expires_in: int = DEFAULT_SIGNED_URL_EXPIRY) -> str:
        """
        Time-limited URL.

        A configured custom domain still wins: it is returned as is (or signed
        through the domain signer when the bucket is private).
        """
        if expires_in <= 0:
            raise ValueError(f"expires_in must be positive, got {expires_in}")
        if self.public_domain:
            return self.resolve(key, expires_in)
        if self._signer is not None:
            return self._signer(key, expires_in)
        if self._domain_signer is not None:
            raise StorageError(
                ErrorKind.INVALID_CONFIG,
                "A custom public domain is required to build URLs for this provider",
                provider=self._provider,
            )
        raise StorageError(
            ErrorKind.UNSUPPORTED,
            "This provider cannot create signed URLs",
            provider=self._provider,
        )
