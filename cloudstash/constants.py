"""
Centralized constants for Cloud Stash.

Chunk sizes, thresholds, batch limits and timeouts used by the storage
providers live here so they can be tuned in one place.
"""

# Transfer Configuration
DOWNLOAD_CHUNK_SIZE = 65536  # 64KB chunks for streaming downloads
MULTIPART_THRESHOLD = 8 * 1024 * 1024  # 8 MB
MULTIPART_CHUNK_SIZE = 5 * 1024 * 1024  # 5 MB parts
OBS_MULTIPART_THRESHOLD = 20 * 1024 * 1024  # uploadFile above this, putFile below
GCS_CHUNK_SIZE = 5 * 1024 * 1024  # must be a multiple of 256 KB
TRANSFER_MAX_CONCURRENCY = 4

# Progress Reporting
PROGRESS_MIN_INTERVAL_SECONDS = 0.5  # at most 2 callbacks per second
SPEED_SAMPLE_WINDOW_SECONDS = 0.5

# Listing and Batching
DEFAULT_MAX_KEYS = 1000
MAX_BATCH_DELETE = 1000  # S3, OSS, COS, OBS and Qiniu all cap a batch at 1000 keys
SMMS_PAGE_SIZE = 100  # fixed by the SM.MS history endpoint
LSKY_MAX_PER_PAGE = 100

# URL Resolution
DEFAULT_SIGNED_URL_EXPIRY = 900  # 15 minutes

# Content Preview
DEFAULT_PREVIEW_MAX_SIZE = 1024 * 1024  # 1 MiB

# HTTP
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_CONNECT_TIMEOUT = 5.0
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 20
PROXY_TEST_URL = "https://www.google.com/generate_204"
PROXY_TEST_TIMEOUT = 10

# User Agent
DEFAULT_USER_AGENT = "Cloud Stash/1.0"

# Backend Endpoints
GITEE_API_BASE = "https://gitee.com/api/v5"
GITEE_WEB_BASE = "https://gitee.com"
SMMS_API_BASE = "https://sm.ms/api/v2"
GCS_PUBLIC_BASE = "https://storage.googleapis.com"

# Defaults applied during config normalization
DEFAULT_GITEE_BRANCH = "main"
DEFAULT_JDCLOUD_REGION = "cn-north-1"
DEFAULT_QINIU_ZONE = "z0"

QINIU_ZONES = frozenset({"z0", "z1", "z2", "na0", "as0"})

VALID_S3_STORAGE_CLASSES = frozenset({
    "STANDARD", "STANDARD_IA", "ONEZONE_IA", "INTELLIGENT_TIERING",
    "GLACIER_IR", "GLACIER", "DEEP_ARCHIVE", "REDUCED_REDUNDANCY",
})

# Logging
DEFAULT_LOG_LEVEL = "INFO"
