"""
Content preview gate.

Decides, from size and content type, whether an object's bytes may be pulled
for inline display. The size check runs on metadata, before the body is
fetched.
"""

import mimetypes
from typing import Callable, Optional

from cloudstash.constants import DEFAULT_PREVIEW_MAX_SIZE
from cloudstash.storage.base import ContentPreview
from cloudstash.storage.progress import fmt_size

TEXT_LIKE_TYPES = frozenset({
    "application/json", "application/ld+json", "application/xml",
    "application/javascript", "application/x-javascript", "application/ecmascript",
    "application/typescript", "application/x-typescript",
    "application/xhtml+xml", "application/x-sh", "application/x-yaml",
    "application/yaml", "application/toml", "application/sql",
    "application/x-www-form-urlencoded", "image/svg+xml",
})

# Types backends fall back to when they do not know better
GENERIC_TYPES = frozenset({
    "", "application/octet-stream", "binary/octet-stream", "application/unknown",
})

# Extensions mimetypes does not know on every platform
_EXTRA_TEXT_EXTENSIONS = frozenset({
    ".md", ".markdown", ".yml", ".yaml", ".toml", ".ini", ".cfg", ".conf", ".log",
    ".ts", ".tsx", ".jsx", ".vue", ".py", ".go", ".rs", ".sh", ".env", ".csv",
})


def _base_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_text_content_type(content_type: Optional[str]) -> bool:
    base = _base_type(content_type)
    if base.startswith("text/"):
        return True
    if base in TEXT_LIKE_TYPES:
        return True
    return base.endswith("+json") or base.endswith("+xml")


def effective_content_type(content_type: Optional[str], key: str) -> str:
    """Backend-reported type, or a guess from the key's extension when it is generic."""
    if _base_type(content_type) not in GENERIC_TYPES:
        return content_type
    guessed, _ = mimetypes.guess_type(key)
    if guessed:
        return guessed
    lowered = key.lower()
    if any(lowered.endswith(ext) for ext in _EXTRA_TEXT_EXTENSIONS):
        return "text/plain"
    return content_type or "application/octet-stream"


def binary_placeholder(content_type: str, size: int) -> str:
    return f"[Binary file: {content_type}, {fmt_size(size)}. Preview is not available for this type.]"


def build_preview(key: str, size: int, content_type: Optional[str],
                  fetch_body: Callable[[], bytes],
                  max_size: int = DEFAULT_PREVIEW_MAX_SIZE) -> ContentPreview:
    """
    Apply the preview gate.

    fetch_body is only called when the object is small enough and text-like.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    content_type = effective_content_type(content_type, key)
    if size > max_size:
        return ContentPreview(size=size, too_large=True, content_type=content_type)

    if not is_text_content_type(content_type):
        return ContentPreview(
            size=size,
            content=binary_placeholder(content_type, size),
            content_type=content_type,
            is_binary=True,
        )

    body = fetch_body()
    if len(body) > max_size:
        # Metadata under-reported the size
        return ContentPreview(size=len(body), too_large=True, content_type=content_type)

    return ContentPreview(
        size=len(body),
        content=body.decode("utf-8", errors="replace"),
        content_type=content_type,
    )
