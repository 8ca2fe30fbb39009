"""In-process cache of OCR/vision results.

Keys are content-derived fingerprints, so a race between two inserts for the
same key stores equal values and the last write wins. The cache never performs
network I/O.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any

from .config import CacheConfig, ProviderConfig

if TYPE_CHECKING:
    from .vision import VisionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OcrResult:
    """Normalized provider output."""

    provider: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"provider": self.provider, "text": self.text}


def make_cache_key(
    *,
    source_identity: str,
    page: int,
    index: int | None,
    provider: ProviderConfig,
) -> str:
    """Derive a deterministic fingerprint from normalized request fields.

    Only fields that change the provider output take part: the endpoint and
    timeout do not.
    """
    material: dict[str, Any] = {
        "source": source_identity,
        "page": page,
        "index": index,
        "provider": provider.type,
        "model": provider.model,
        "prompt": provider.prompt,
    }
    canonical = json.dumps(material, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class _Entry:
    result: OcrResult
    stored_at: float


class ResultCache:
    """Maps cache keys to OCR results, with optional LRU and TTL bounds."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def should_use(request: VisionRequest) -> bool:
        """Cache reads are opt-out per request."""
        return request.use_cache

    def lookup(self, key: str) -> OcrResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            ttl_s = self._config.ttl_s
            if ttl_s is not None and self._clock() - entry.stored_at >= ttl_s:
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.result

    def insert(self, key: str, result: OcrResult) -> None:
        with self._lock:
            self._entries[key] = _Entry(result=result, stored_at=self._clock())
            self._entries.move_to_end(key)

            max_entries = self._config.max_entries
            if max_entries is not None:
                while len(self._entries) > max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Non-sensitive counters for the server-status resource."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "max_entries": self._config.max_entries,
                "ttl_s": self._config.ttl_s,
            }
