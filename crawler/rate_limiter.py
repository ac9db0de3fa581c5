"""
Domain-aware request rate limiter.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from crawler.config.models import RateLimitSettings
from crawler.errors import RateLimitedError
from crawler.locks import KeyedLock
from crawler.logging_utils import log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainRateState:
    """
    Read-only view of one domain's throttle state.
    """

    domain: str
    last_request_at: float | None
    requests_this_window: int
    window_reset_at: float | None


def domain_of(url: str) -> str:
    parsed = urlparse(url)
    domain = (parsed.hostname or parsed.netloc or parsed.path).lower()
    return domain[4:] if domain.startswith("www.") else domain


class DomainRateLimiter:
    """
    Enforces randomized minimum spacing and a rolling hourly cap per domain.

    Each domain has its own lock; a caller waiting on one domain never delays
    callers for another. Request history is pruned lazily on acquire, and a
    domain with no requests left in the window is forgotten.
    """

    def __init__(
        self,
        *,
        settings: RateLimitSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._locks = KeyedLock()
        self._history: dict[str, deque[float]] = {}

    async def acquire(self, domain: str, *, max_wait_seconds: float | None = None) -> float:
        """
        Suspend until a request to ``domain`` is allowed; return seconds waited.

        When ``max_wait_seconds`` is given and the next slot is further away
        than that, raise ``RateLimitedError`` without waiting or taking a slot.
        """

        key = domain.strip().lower()
        self._forget_idle(self._clock())
        async with self._locks.hold(key):
            history = self._history.setdefault(key, deque())
            spacing = self._rng.uniform(
                self._settings.min_delay_seconds,
                self._settings.max_delay_seconds,
            )
            waited = 0.0
            while True:
                now = self._clock()
                self._prune(history, now)
                delay = self._required_delay(history, now, spacing)
                if delay <= 0:
                    break
                if max_wait_seconds is not None and waited + delay > max_wait_seconds:
                    log_event(
                        logger,
                        logging.INFO,
                        "rate_limit_wait_refused",
                        domain=key,
                        wait_seconds=round(delay, 3),
                        max_wait_seconds=max_wait_seconds,
                    )
                    raise RateLimitedError(key, delay)
                if len(history) >= self._settings.max_requests_per_window:
                    log_event(
                        logger,
                        logging.INFO,
                        "rate_limit_cap_reached",
                        domain=key,
                        wait_seconds=round(delay, 3),
                    )
                await self._sleep(delay)
                waited += delay

            history.append(self._clock())
            return waited

    def state(self, domain: str) -> DomainRateState:
        key = domain.strip().lower()
        history = self._history.get(key)
        if not history:
            return DomainRateState(
                domain=key,
                last_request_at=None,
                requests_this_window=0,
                window_reset_at=None,
            )
        now = self._clock()
        active = [stamp for stamp in history if stamp + self._settings.window_seconds > now]
        return DomainRateState(
            domain=key,
            last_request_at=history[-1],
            requests_this_window=len(active),
            window_reset_at=active[0] + self._settings.window_seconds if active else None,
        )

    def tracked_domains(self) -> list[str]:
        return sorted(self._history)

    def _required_delay(self, history: deque[float], now: float, spacing: float) -> float:
        if not history:
            return 0.0
        delay = history[-1] + spacing - now
        if len(history) >= self._settings.max_requests_per_window:
            delay = max(delay, history[0] + self._settings.window_seconds - now)
        return delay

    def _prune(self, history: deque[float], now: float) -> None:
        window = self._settings.window_seconds
        while history and history[0] + window <= now:
            history.popleft()

    def _forget_idle(self, now: float) -> None:
        # Drop domains with nothing left in the window and no caller inside.
        for key in list(self._history):
            if self._locks.in_use(key):
                continue
            history = self._history[key]
            self._prune(history, now)
            if not history:
                del self._history[key]
