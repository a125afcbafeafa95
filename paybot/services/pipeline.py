from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable

from paybot.bot.templates import PROCESSING_ERROR
from paybot.core.errors import ErrorKind
from paybot.core.fmt import address_reply
from paybot.core.mention import DEFAULT_MAX_DEPTH, Mention, sanitize
from paybot.core.nlu import IntentParser
from paybot.core.outcome import Failure, Outcome, Reply, Text
from paybot.core.ports import MentionSource, Registry
from paybot.services.cursor import MentionCursor, id_sort_key
from paybot.services.dispatch import DispatchRouter
from paybot.services.idempotency import IdempotencyTracker
from paybot.services.response import DEFAULT_LIMIT, format_outcome

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    skipped: bool = False
    aborted: bool = False
    fetched: int = 0
    duplicates: int = 0
    ignored: int = 0
    processed: int = 0
    replies_sent: int = 0
    reply_failures: int = 0


class MentionPipeline:
    """One poll cycle: fetch, sanitize, dedupe, order, then handle mentions one at a time.

    Mentions are handled strictly in sequence because a handler may create an
    account that a later mention in the same batch relies on. Cycles never
    overlap: a cycle started while another is running returns immediately.
    """

    def __init__(
        self,
        *,
        source: MentionSource,
        parser: IntentParser,
        router: DispatchRouter,
        registry: Registry,
        tracker: IdempotencyTracker,
        bot_handle: str,
        cursor: MentionCursor | None = None,
        timeout: float = 30.0,
        reply_limit: int = DEFAULT_LIMIT,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.source = source
        self.parser = parser
        self.router = router
        self.registry = registry
        self.tracker = tracker
        self.bot_handle = bot_handle.lstrip("@")
        self.cursor = cursor
        self.timeout = timeout
        self.reply_limit = reply_limit
        self.max_depth = max_depth
        self._mention_re = re.compile(rf"@{re.escape(self.bot_handle)}\b", re.IGNORECASE)
        self._running = False
        self._replay: set[str] = set()

    @property
    def running(self) -> bool:
        return self._running

    async def run_cycle(self) -> CycleReport:
        if self._running:
            logger.info("cycle_overlap_skipped", extra={"event": "cycle_overlap_skipped"})
            return CycleReport(skipped=True)
        self._running = True
        started = time.perf_counter()
        try:
            report = await self._run()
        finally:
            self._running = False
        logger.info(
            "cycle_done",
            extra={
                "event": "cycle_done",
                "count": report.processed,
                "latency_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return report

    async def force_reprocess(self, mention_ids: Iterable[str]) -> list[str]:
        """Forget the given ids so the next cycle handles them again if they are still fetched."""
        removed = []
        for mention_id in mention_ids:
            self._replay.add(mention_id)
            if self.tracker.force_reprocess(mention_id):
                removed.append(mention_id)
        if self.cursor is not None:
            await self.cursor.invalidate_replied()
        return removed

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _run(self) -> CycleReport:
        report = CycleReport()
        since_id = await self.cursor.load() if self.cursor is not None else None
        try:
            raw = await self._bounded(self.source.fetch_recent_mentions(since_id))
        except Exception as exc:  # noqa: BLE001
            logger.warning("fetch_failed", extra={"event": "fetch_failed", "error": str(exc) or type(exc).__name__})
            report.aborted = True
            return report

        raw = list(raw or [])
        report.fetched = len(raw)
        await self._merge_replied()

        batch: list[Mention] = []
        ignored: list[str] = []
        seen: set[str] = set()
        for item in raw:
            mention = sanitize(item, self.max_depth)
            if mention is None or not mention.id:
                continue
            if mention.id in seen or self.tracker.has_processed(mention.id):
                report.duplicates += 1
                continue
            seen.add(mention.id)
            if not mention.author_handle or not self._addresses_bot(mention) or self._is_own(mention):
                self.tracker.mark_processed(mention.id, skipped=True)
                report.ignored += 1
                ignored.append(mention.id)
                logger.debug("mention_ignored", extra={"event": "mention_ignored", "mention_id": mention.id})
                continue
            batch.append(mention)

        batch.sort(key=lambda m: (m.created_at, id_sort_key(m.id)))
        for mention in batch:
            await self._handle(mention, report)
        # Ignored ids only move the watermark once every handled mention is done.
        if self.cursor is not None:
            for mention_id in ignored:
                await self.cursor.advance(mention_id)
        return report

    async def _merge_replied(self) -> None:
        loader = getattr(self.source, "fetch_replied_ids", None)
        if self.cursor is None or loader is None:
            return
        for mention_id in await self.cursor.replied_ids(lambda: self._bounded(loader())):
            if mention_id in self._replay or self.tracker.has_processed(mention_id):
                continue
            self.tracker.mark_processed(mention_id)

    def _addresses_bot(self, mention: Mention) -> bool:
        return bool(self._mention_re.search(mention.text))

    def _is_own(self, mention: Mention) -> bool:
        return mention.author_handle.lower() == self.bot_handle.lower()

    async def _outcome_for(self, mention: Mention) -> Outcome:
        command = self.parser.parse(mention.text)
        try:
            registered = await self._bounded(self.registry.is_registered(mention.author_handle))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "registry_failed",
                extra={"event": "registry_failed", "mention_id": mention.id, "error": str(exc) or type(exc).__name__},
            )
            return Failure(ErrorKind.SERVICE_UNAVAILABLE, str(exc))
        logger.info(
            "mention_parsed",
            extra={
                "event": "mention_parsed",
                "mention_id": mention.id,
                "handle": mention.author_handle,
                "command": command.name,
            },
        )
        return await self.router.dispatch(command, mention.author_handle, registered, mention.author_id)

    def _build_reply(self, mention: Mention, outcome: Outcome) -> Reply:
        handle = mention.author_handle
        prefix_len = len(handle) + 2 if handle else 0
        body = format_outcome(outcome, max(self.reply_limit - prefix_len, 0))
        return Reply(target_mention_id=mention.id, text=address_reply(handle, body))

    async def _handle(self, mention: Mention, report: CycleReport) -> None:
        try:
            try:
                outcome = await self._outcome_for(mention)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "mention_failed",
                    extra={"event": "mention_failed", "mention_id": mention.id, "handle": mention.author_handle},
                )
                outcome = Text(PROCESSING_ERROR)
            reply = self._build_reply(mention, outcome)
            try:
                await self._bounded(self.source.reply_to(reply.target_mention_id, reply.text))
                report.replies_sent += 1
            except Exception as exc:  # noqa: BLE001
                report.reply_failures += 1
                logger.warning(
                    "reply_failed",
                    extra={"event": "reply_failed", "mention_id": mention.id, "error": str(exc) or type(exc).__name__},
                )
        finally:
            self.tracker.mark_processed(mention.id)
            self._replay.discard(mention.id)
            report.processed += 1
            if self.cursor is not None:
                await self.cursor.advance(mention.id)


def summarize(report: CycleReport) -> dict[str, Any]:
    return {
        "skipped": report.skipped,
        "aborted": report.aborted,
        "fetched": report.fetched,
        "processed": report.processed,
        "replies_sent": report.replies_sent,
    }
