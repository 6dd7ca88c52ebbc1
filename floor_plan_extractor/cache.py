"""In-memory cache of pipeline results keyed by input content and options."""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from .models import PipelineOptions, PipelineResult
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def make_cache_key(raster: RasterBuffer, options: PipelineOptions) -> str:
    """Stable SHA-256 signature of the raster content and the option set."""
    digest = hashlib.sha256()
    digest.update(repr(raster.pixels.shape).encode("ascii"))
    digest.update(raster.tobytes())
    digest.update(options.to_json().encode("utf-8"))
    return digest.hexdigest()


class ResultCache:
    """Bounded, time-boxed map from cache keys to pipeline results.

    Stored and returned results are deep copies, so callers can never mutate
    a cached entry. Expired entries are dropped lazily on the next write;
    when the cache is full the oldest entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("cache must hold at least one entry")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, PipelineResult]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[PipelineResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                return None
            return result.model_copy(deep=True)

    def set(self, key: str, result: PipelineResult) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
            for k in expired:
                del self._entries[k]

            self._entries.pop(key, None)
            self._entries[key] = (now, result.model_copy(deep=True))
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
