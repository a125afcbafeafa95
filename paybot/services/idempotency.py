from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10_000
EVICT_FRACTION = 0.2


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ProcessedRecord:
    processed_at_ms: int
    skipped: bool = False


class IdempotencyTracker:
    """Remembers which mention ids were handled so each one is acted on once.

    Bounded by `max_entries`: when an insert pushes the size past the bound the
    oldest ceil(20%) of entries by `processed_at_ms` are dropped. An optional
    TTL expires old entries first so they can be reprocessed after a cooldown.
    Only the active poll cycle writes to it.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_ms = int(ttl_seconds * 1000) if ttl_seconds else None
        self._clock = clock
        self._records: dict[str, ProcessedRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, mention_id: object) -> bool:
        return isinstance(mention_id, str) and self.has_processed(mention_id)

    def _expired(self, record: ProcessedRecord, now_ms: int) -> bool:
        return self.ttl_ms is not None and now_ms - record.processed_at_ms >= self.ttl_ms

    def has_processed(self, mention_id: str) -> bool:
        record = self._records.get(mention_id)
        if record is None:
            return False
        return not self._expired(record, self._clock())

    def record(self, mention_id: str) -> ProcessedRecord | None:
        return self._records.get(mention_id)

    def mark_processed(self, mention_id: str, skipped: bool = False) -> None:
        if not mention_id:
            return
        now = self._clock()
        existing = self._records.get(mention_id)
        if existing is not None and not self._expired(existing, now):
            return
        self._records.pop(mention_id, None)
        self._records[mention_id] = ProcessedRecord(processed_at_ms=now, skipped=skipped)
        self._expire(now)
        self._evict()

    def force_reprocess(self, mention_id: str) -> bool:
        present = self._records.pop(mention_id, None) is not None
        if present:
            logger.info("force_reprocess", extra={"event": "force_reprocess", "mention_id": mention_id})
        return present

    def _expire(self, now_ms: int) -> None:
        if self.ttl_ms is None:
            return
        stale = [key for key, rec in self._records.items() if self._expired(rec, now_ms)]
        for key in stale:
            del self._records[key]
        if stale:
            logger.debug("processed_expired", extra={"event": "processed_expired", "count": len(stale)})

    def _evict(self) -> None:
        if len(self._records) <= self.max_entries:
            return
        to_remove = math.ceil(self.max_entries * EVICT_FRACTION)
        # sorted() is stable, so equal timestamps keep insertion order.
        oldest = sorted(self._records.items(), key=lambda item: item[1].processed_at_ms)[:to_remove]
        for key, _ in oldest:
            del self._records[key]
        logger.info(
            "processed_evicted",
            extra={"event": "processed_evicted", "count": len(oldest)},
        )
