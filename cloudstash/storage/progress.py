"""
Transfer progress reporting.

ProgressReporter sits between a transfer and the caller's callback. It
throttles callbacks to at most one per PROGRESS_MIN_INTERVAL_SECONDS (plus a
guaranteed final one), samples speed over a fixed wall-clock window instead
of per chunk, and checks an optional cancel event. The adapter methods
translate each SDK's callback signature into reporter updates.
"""

import logging
import threading
import time
from typing import Callable, Optional

from cloudstash.constants import PROGRESS_MIN_INTERVAL_SECONDS, SPEED_SAMPLE_WINDOW_SECONDS
from cloudstash.storage.base import ProgressCallback
from cloudstash.storage.errors import TransferCancelledError

logger = logging.getLogger(__name__)


def fmt_size(nbytes: float) -> str:
    """Format byte count as human-readable size."""
    for unit in ("B", "KB", "MB", "GB"):
        if abs(nbytes) < 1024:
            return f"{nbytes:.1f} {unit}"
        nbytes /= 1024
    return f"{nbytes:.1f} TB"


def fmt_duration(seconds: float) -> str:
    """Format seconds as human-readable duration."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}m{secs:02d}s"


class ProgressReporter:
    """Throttled, speed-sampling progress relay for one transfer."""

    def __init__(self, total: int = 0,
                 callback: Optional[ProgressCallback] = None,
                 cancel_event: Optional[threading.Event] = None,
                 provider: Optional[str] = None,
                 min_interval: float = PROGRESS_MIN_INTERVAL_SECONDS,
                 sample_window: float = SPEED_SAMPLE_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.total = max(int(total or 0), 0)
        self.transferred = 0
        self.speed = 0.0
        self._callback = callback
        self._cancel_event = cancel_event
        self._provider = provider
        self._min_interval = min_interval
        self._sample_window = sample_window
        self._clock = clock
        self._lock = threading.Lock()

        now = clock()
        self._last_emit: Optional[float] = None
        self._window_start = now
        self._window_bytes = 0
        self._finished = False

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100 if self._finished else 0
        return min(100, int(self.transferred * 100 / self.total))

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        if self.cancelled:
            raise TransferCancelledError(self._provider)

    def set_total(self, total: Optional[int]) -> None:
        if total:
            self.total = int(total)

    def increment(self, delta: int) -> None:
        """Add delta bytes (boto3-style callbacks report increments)."""
        with self._lock:
            self._advance(self.transferred + int(delta))

    def update(self, transferred: int, total: Optional[int] = None) -> None:
        """Set the absolute byte count (oss2, COS, OBS and Qiniu report totals so far)."""
        with self._lock:
            if total:
                self.total = int(total)
            self._advance(int(transferred))

    def finish(self) -> None:
        """Emit the final callback exactly once."""
        with self._lock:
            if self._finished:
                return
            self._finished = True
            if self.total and self.transferred < self.total:
                self.transferred = self.total
            self._sample(self._clock(), force=True)
            self._emit()

    def _advance(self, transferred: int) -> None:
        self.check_cancelled()
        self.transferred = max(transferred, self.transferred)
        now = self._clock()
        self._sample(now)
        if self._last_emit is None or now - self._last_emit >= self._min_interval:
            self._last_emit = now
            self._emit()

    def _sample(self, now: float, force: bool = False) -> None:
        elapsed = now - self._window_start
        if elapsed >= self._sample_window or (force and elapsed > 0):
            self.speed = (self.transferred - self._window_bytes) / elapsed
            self._window_start = now
            self._window_bytes = self.transferred

    def _emit(self) -> None:
        if self._callback is None:
            return
        try:
            self._callback(self.percent, self.transferred, self.total, self.speed)
        except TransferCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Progress callback raised {e.__class__.__name__}: {e}")

    # ------------------------------------------------------------------
    # SDK callback adapters
    # ------------------------------------------------------------------

    def boto3_callback(self, bytes_amount: int) -> None:
        self.increment(bytes_amount)

    def consumed_callback(self, consumed: int, total: int) -> None:
        """oss2, cos-python-sdk and qiniu: (bytes so far, total bytes)."""
        self.update(consumed, total)

    def obs_callback(self, transferred: int, total: int, seconds: float = 0) -> None:
        self.update(transferred, total)
