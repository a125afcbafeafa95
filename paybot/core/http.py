from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from paybot.core.errors import UpstreamError

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class CircuitState:
    failures: int = 0
    open_until: float = 0.0


class ResilientHTTPClient:
    """httpx client with a per-host circuit breaker.

    Reads (`get_json`) are retried with exponential backoff. Writes
    (`post_json`) are sent exactly once: agent and provisioning calls move
    funds, and a second attempt could execute a transfer twice.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retries: int = 2,
        backoff_base: float = 0.4,
        breaker_threshold: int = 4,
        breaker_cooldown: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.retries = retries
        self.backoff_base = backoff_base
        self.breaker_threshold = breaker_threshold
        self.breaker_cooldown = breaker_cooldown
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._circuits: dict[str, CircuitState] = {}

    async def close(self) -> None:
        await self._client.aclose()

    def circuit_open(self, host: str) -> bool:
        state = self._circuits.get(host)
        return state is not None and state.open_until > time.monotonic()

    def _failed(self, host: str) -> None:
        state = self._circuits.setdefault(host, CircuitState())
        state.failures += 1
        if state.failures >= self.breaker_threshold and not self.circuit_open(host):
            state.open_until = time.monotonic() + self.breaker_cooldown
            logger.warning("circuit_opened", extra={"event": "circuit_opened", "error": host})

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        host = httpx.URL(url).host or "unknown"
        if self.circuit_open(host):
            raise UpstreamError(f"Circuit open for {host}")
        try:
            response = await self._client.request(method, url, **kwargs)
            if response.status_code in TRANSIENT_STATUSES:
                raise UpstreamError(f"{method} {url} returned {response.status_code}")
            response.raise_for_status()
            data = response.json()
        except UpstreamError:
            self._failed(host)
            raise
        except (httpx.HTTPError, ValueError) as exc:
            self._failed(host)
            raise UpstreamError(f"{method} {url} failed: {exc}") from exc
        self._circuits.pop(host, None)
        return data

    async def get_json(
        self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any:
        for attempt in range(self.retries + 1):
            try:
                return await self._send("GET", url, params=params, headers=headers)
            except UpstreamError:
                if attempt >= self.retries or self.circuit_open(httpx.URL(url).host or "unknown"):
                    raise
                await asyncio.sleep(self.backoff_base * (2**attempt))
        raise UpstreamError(f"GET {url} failed")

    async def post_json(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None
    ) -> Any:
        return await self._send("POST", url, json=payload, headers=headers)
