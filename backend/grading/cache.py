"""
cache.py - In-memory memo of final-scored records.

Entries are keyed by (teacher_id, subject_id) plus a fingerprint of the
score and component records they were computed from, so edited inputs never
hit a stale entry. The data access layer calls invalidate() after writes;
entries also expire after a TTL.
"""

import hashlib
import json
import logging
import threading
from time import time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60  # 1 hour


def fingerprint(*parts: Any) -> str:
    """Stable digest of JSON-like inputs, independent of dict key order."""
    encoded = json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class AggregateCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(teacher_id: Any, subject_id: Any) -> Tuple[str, str]:
        return (str(teacher_id), "" if subject_id is None else str(subject_id))

    def _purge_expired(self):
        now = self._clock()
        expired = [k for k, e in self._entries.items() if (now - e["created_at"]) > self.ttl_seconds]
        for k in expired:
            self._entries.pop(k, None)

    def get_or_compute(
        self,
        teacher_id: Any,
        subject_id: Any,
        inputs: Iterable[Any],
        compute: Callable[[], Any],
    ) -> Any:
        """
        Return the cached value for this key when it was computed from the
        same inputs, otherwise call compute() and store its result.
        """
        key = self._key(teacher_id, subject_id)
        digest = fingerprint(*inputs)
        with self._lock:
            self._purge_expired()
            entry = self._entries.get(key)
            if entry is not None and entry["fingerprint"] == digest:
                self.hits += 1
                logger.debug("Aggregate cache hit for %s", key)
                return entry["value"]

        value = compute()
        with self._lock:
            self.misses += 1
            self._entries[key] = {
                "fingerprint": digest,
                "value": value,
                "created_at": self._clock(),
            }
        logger.debug("Aggregate cache miss for %s", key)
        return value

    def invalidate(self, teacher_id: Any, subject_id: Optional[Any] = None) -> int:
        """Drop one subject's entry, or every entry of the teacher. Returns the count."""
        teacher = str(teacher_id)
        with self._lock:
            if subject_id is not None:
                removed = 1 if self._entries.pop(self._key(teacher, subject_id), None) else 0
            else:
                keys = [k for k in self._entries if k[0] == teacher]
                for k in keys:
                    self._entries.pop(k, None)
                removed = len(keys)
        logger.info("Invalidated %d aggregate cache entr%s for teacher %s",
                    removed, "y" if removed == 1 else "ies", teacher)
        return removed

    def clear(self):
        with self._lock:
            self._entries.clear()

    def stats(self) -> Mapping[str, Any]:
        with self._lock:
            self._purge_expired()
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
