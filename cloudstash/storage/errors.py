"""
Error taxonomy shared by every storage provider.

Each backend reports failures differently: botocore raises ClientError with
a nested response dict, oss2 raises ServerError with status/code, the COS SDK
exposes getters, google-cloud raises GoogleAPICallError with an int code,
OBS and Qiniu return status objects, and the REST backends hand back HTTP
responses. classify_error() funnels all of them into one StorageError with
a backend-agnostic message, so callers only ever handle one exception type.
"""

import json
import socket
from enum import Enum
from typing import Any, Optional

import requests


class ErrorKind(Enum):
    """Categories of storage failure."""
    AUTH = "auth"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    TOO_LARGE = "too_large"
    MALFORMED_RESPONSE = "malformed_response"
    PARTIAL_BATCH = "partial_batch"
    INVALID_CONFIG = "invalid_config"
    UNSUPPORTED = "unsupported"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_DEFAULT_MESSAGES = {
    ErrorKind.AUTH: "Authentication failed: the credentials were rejected or lack permission",
    ErrorKind.NOT_FOUND: "The requested object or bucket was not found",
    ErrorKind.NETWORK: "Network error: the storage service could not be reached",
    ErrorKind.TOO_LARGE: "The payload exceeds the allowed size",
    ErrorKind.MALFORMED_RESPONSE: "The storage service returned an unexpected response",
    ErrorKind.PARTIAL_BATCH: "Some items in the batch could not be processed",
    ErrorKind.INVALID_CONFIG: "The storage configuration is invalid",
    ErrorKind.UNSUPPORTED: "This operation is not supported by the storage provider",
    ErrorKind.CANCELLED: "The transfer was cancelled",
    ErrorKind.UNKNOWN: "The storage operation failed",
}


class StorageError(Exception):
    """
    A classified storage failure.

    Attributes:
        kind: ErrorKind category
        message: human-readable, backend-agnostic description
        provider: provider type value ("s3", "gitee", ...) when known
        detail: the backend's native error message
        status: HTTP-like status code when the backend reported one
    """

    def __init__(self, kind: ErrorKind, message: Optional[str] = None,
                 provider: Optional[str] = None, detail: Optional[str] = None,
                 status: Optional[int] = None):
        self.kind = kind
        self.message = message or _DEFAULT_MESSAGES[kind]
        self.provider = provider
        self.detail = detail
        self.status = status
        super().__init__(self.message)

    def __str__(self):
        if self.detail and self.detail != self.message:
            return f"{self.message} ({self.detail})"
        return self.message

    def to_dict(self):
        return {
            'kind': self.kind.value,
            'message': self.message,
            'provider': self.provider,
            'detail': self.detail,
            'status': self.status,
        }


class TransferCancelledError(StorageError):
    """Raised when the caller cancels an upload or download."""

    def __init__(self, provider: Optional[str] = None):
        super().__init__(ErrorKind.CANCELLED, provider=provider)


class MalformedResponseError(StorageError):
    """Structured data was expected but something else (usually HTML) came back."""

    def __init__(self, detail: Optional[str] = None, provider: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(ErrorKind.MALFORMED_RESPONSE, provider=provider,
                         detail=detail, status=status)


class BackendResponseError(Exception):
    """
    Raw failure reported as a value by a backend (status object, tuple, JSON body).

    Providers raise this and let classify_error() turn it into a StorageError.
    """

    def __init__(self, status: Optional[int], code: Optional[str] = None,
                 message: Optional[str] = None):
        self.status = status
        self.code = code
        self.message = message or code or f"HTTP {status}"
        super().__init__(self.message)


NOT_FOUND_CODES = frozenset({
    'NoSuchKey', 'NoSuchBucket', 'NotFound', 'NoSuchObject', '404',
    'ResourceNotFound', 'NoSuchUpload', 'no such file or directory',
})

AUTH_CODES = frozenset({
    'AccessDenied', 'InvalidAccessKeyId', 'SignatureDoesNotMatch', 'Forbidden',
    'ExpiredToken', 'InvalidToken', 'Unauthorized', 'AuthFailure',
    'AccountProblem', 'InvalidSecurity', 'AllAccessDisabled', '401', '403',
})

TOO_LARGE_CODES = frozenset({'EntityTooLarge', 'FileTooLarge', '413'})

# Qiniu reports its own codes in the HTTP status slot
QINIU_NOT_FOUND_STATUSES = frozenset({612, 631})

# Transport failures raised by SDKs that do not derive from requests/socket errors
_NETWORK_ERROR_NAMES = frozenset({
    'EndpointConnectionError', 'ConnectTimeoutError', 'ReadTimeoutError',
    'ProxyConnectionError', 'ConnectionClosedError', 'HTTPClientError',
    'RequestError',  # oss2.exceptions.RequestError
    'CosClientError',
    'TransportError', 'RetryError', 'ServiceUnavailable',
})


def _status_of(exc: Any) -> Optional[int]:
    """Find an HTTP status on the exception, whatever the SDK calls it."""
    response = getattr(exc, 'response', None)
    if isinstance(response, dict):
        status = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        if isinstance(status, int):
            return status
    elif response is not None:
        status = getattr(response, 'status_code', None)
        if isinstance(status, int):
            return status

    getter = getattr(exc, 'get_status_code', None)
    if callable(getter):
        try:
            return int(getter())
        except (TypeError, ValueError):
            pass

    for attr in ('status', 'status_code', 'code'):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def _code_of(exc: Any) -> Optional[str]:
    """Find a vendor error code string on the exception."""
    response = getattr(exc, 'response', None)
    if isinstance(response, dict):
        code = response.get('Error', {}).get('Code')
        if code:
            return str(code)

    getter = getattr(exc, 'get_error_code', None)
    if callable(getter):
        code = getter()
        if code:
            return str(code)

    for attr in ('code', 'error_code', 'errorCode'):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


def _detail_of(exc: Any) -> str:
    getter = getattr(exc, 'get_error_msg', None)
    if callable(getter):
        msg = getter()
        if msg:
            return str(msg)
    response = getattr(exc, 'response', None)
    if isinstance(response, dict):
        msg = response.get('Error', {}).get('Message')
        if msg:
            return str(msg)
    message = getattr(exc, 'message', None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


def _is_network_error(exc: BaseException) -> bool:
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                        ConnectionError, TimeoutError, socket.timeout)):
        return True
    return any(cls.__name__ in _NETWORK_ERROR_NAMES for cls in type(exc).__mro__)


def classify_error(exc: BaseException, provider: Optional[str] = None) -> StorageError:
    """
    Convert any backend exception into a StorageError.

    Already-classified errors pass through unchanged (provider is filled in
    when missing).
    """
    if isinstance(exc, StorageError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    # Imported here: config_validator pulls in storage.base lazily as well
    from cloudstash.config_validator import ConfigValidationError
    if isinstance(exc, ConfigValidationError):
        return StorageError(ErrorKind.INVALID_CONFIG, provider=provider, detail=exc.message)

    detail = _detail_of(exc)

    if isinstance(exc, requests.exceptions.ProxyError):
        return StorageError(
            ErrorKind.NETWORK,
            "Network error: the proxy refused or could not forward the connection",
            provider=provider, detail=detail,
        )

    if _is_network_error(exc):
        return StorageError(ErrorKind.NETWORK, provider=provider, detail=detail)

    if isinstance(exc, (json.JSONDecodeError, requests.exceptions.JSONDecodeError)):
        return MalformedResponseError(detail=detail, provider=provider)

    status = _status_of(exc)
    code = _code_of(exc)

    if code in NOT_FOUND_CODES or status == 404:
        kind = ErrorKind.NOT_FOUND
    elif provider == 'qiniu' and status in QINIU_NOT_FOUND_STATUSES:
        kind = ErrorKind.NOT_FOUND
    elif code in AUTH_CODES or status in (401, 403):
        kind = ErrorKind.AUTH
    elif code in TOO_LARGE_CODES or status == 413:
        kind = ErrorKind.TOO_LARGE
    elif isinstance(exc, FileNotFoundError):
        kind = ErrorKind.NOT_FOUND
    else:
        kind = ErrorKind.UNKNOWN

    return StorageError(kind, provider=provider, detail=detail, status=status)


def is_not_found(exc: BaseException, provider: Optional[str] = None) -> bool:
    """True when the exception means the object (or bucket) does not exist."""
    return classify_error(exc, provider).kind == ErrorKind.NOT_FOUND


def describe_for_user(error: StorageError) -> str:
    """Render a connection-test failure the way it is shown to a user."""
    if error.kind == ErrorKind.AUTH:
        text = "Access denied: check the access key, secret or token and its permissions"
    elif error.kind == ErrorKind.NOT_FOUND:
        text = "Bucket or repository not found: check the name and region"
    elif error.kind == ErrorKind.NETWORK:
        text = "Network failure: check the internet connection or proxy settings"
    elif error.kind == ErrorKind.INVALID_CONFIG:
        text = "Invalid configuration: some required settings are missing"
    elif error.kind == ErrorKind.MALFORMED_RESPONSE:
        text = "Unexpected response from the service: the token may be invalid"
    else:
        text = error.message
    if error.detail:
        text += f" ({error.detail})"
    return text
