"""
Per-domain browser sessions with randomized fingerprints.
"""

from __future__ import annotations

import json
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import async_playwright
from playwright_stealth import Stealth

from crawler.config.models import DEFAULT_USER_AGENTS, BrowserSettings
from crawler.errors import CrawlerError
from crawler.locks import KeyedLock
from crawler.logging_utils import log_event

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-infobars",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--no-first-run",
)

BrowserFactory = Callable[[BrowserSettings], Awaitable[Any]]


@dataclass(frozen=True)
class FingerprintPools:
    """
    Immutable value pools a fingerprint is drawn from.
    """

    viewports: tuple[tuple[int, int], ...] = (
        (1366, 768),
        (1920, 1080),
        (1440, 900),
        (1536, 864),
        (1280, 720),
    )
    device_scale_factors: tuple[float, ...] = (1.0, 1.5, 2.0)
    locales: tuple[str, ...] = ("en-US", "en-GB", "en-CA", "en-AU")
    timezones: tuple[str, ...] = (
        "America/New_York",
        "America/Chicago",
        "America/Denver",
        "America/Los_Angeles",
        "America/Toronto",
    )
    user_agents: tuple[str, ...] = DEFAULT_USER_AGENTS


@dataclass(frozen=True)
class FingerprintProfile:
    viewport_width: int
    viewport_height: int
    device_scale_factor: float
    locale: str
    timezone_id: str
    user_agent: str

    @property
    def languages(self) -> list[str]:
        primary = self.locale.split("-")[0]
        return [self.locale, primary] if primary != self.locale else [self.locale]

    def context_options(self) -> dict[str, Any]:
        return {
            "user_agent": self.user_agent,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "device_scale_factor": self.device_scale_factor,
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "java_script_enabled": True,
            "extra_http_headers": {
                "Accept-Language": f"{','.join(self.languages)};q=0.9",
                "Accept": (
                    "text/html,application/xhtml+xml,application/xml;q=0.9,"
                    "image/avif,image/webp,*/*;q=0.8"
                ),
            },
        }

    def init_script(self) -> str:
        """
        Navigator overrides applied before any page script runs.
        """

        languages = json.dumps(self.languages)
        return f"""
Object.defineProperty(navigator, 'webdriver', {{ get: () => undefined }});
Object.defineProperty(navigator, 'plugins', {{
    get: () => [
        {{ name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' }},
        {{ name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai' }},
        {{ name: 'Native Client', filename: 'internal-nacl-plugin' }},
    ],
}});
Object.defineProperty(navigator, 'languages', {{ get: () => {languages} }});
window.chrome = window.chrome || {{ runtime: {{}}, loadTimes: () => ({{}}), csi: () => ({{}}) }};
Object.defineProperty(navigator, 'connection', {{
    get: () => ({{ effectiveType: '4g', rtt: 50, downlink: 10, saveData: false }}),
}});
"""


def draw_fingerprint(pools: FingerprintPools, rng: random.Random) -> FingerprintProfile:
    """
    Draw one value uniformly from each pool.
    """

    width, height = rng.choice(pools.viewports)
    return FingerprintProfile(
        viewport_width=width,
        viewport_height=height,
        device_scale_factor=rng.choice(pools.device_scale_factors),
        locale=rng.choice(pools.locales),
        timezone_id=rng.choice(pools.timezones),
        user_agent=rng.choice(pools.user_agents),
    )


@dataclass
class StealthSession:
    domain: str
    context: Any
    profile: FingerprintProfile
    created_at: float
    last_used_at: float
    pages_opened: int = field(default=0)

    async def new_page(self) -> Any:
        page = await self.context.new_page()
        self.pages_opened += 1
        return page


class StealthSessionManager:
    """
    Owns one browser context per domain.

    Sessions are created lazily under a per-domain lock and reused until
    closed, evicted for idleness or torn down with ``close_all``.
    """

    def __init__(
        self,
        *,
        settings: BrowserSettings,
        pools: FingerprintPools | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        browser_factory: BrowserFactory | None = None,
        evasions: Stealth | None = None,
    ) -> None:
        self._settings = settings
        self._pools = pools or FingerprintPools(user_agents=settings.user_agents)
        self._rng = rng or random.Random()
        self._clock = clock
        self._browser_factory = browser_factory
        self._evasions = evasions or Stealth()
        self._playwright: Any | None = None
        self._browser: Any | None = None
        self._sessions: dict[str, StealthSession] = {}
        self._locks = KeyedLock()

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        if self._browser is not None:
            return
        if self._browser_factory is not None:
            self._browser = await self._browser_factory(self._settings)
        else:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._settings.headless,
                args=list(CHROMIUM_ARGS),
            )
        log_event(logger, logging.INFO, "browser_started", headless=self._settings.headless)

    async def get_or_create(self, domain: str) -> StealthSession:
        key = domain.strip().lower()
        async with self._locks.hold(key):
            session = self._sessions.get(key)
            if session is not None:
                session.last_used_at = self._clock()
                return session

            if self._browser is None:
                raise CrawlerError("Browser is not started; call start() first.")

            profile = draw_fingerprint(self._pools, self._rng)
            context = await self._browser.new_context(**profile.context_options())
            await context.add_init_script(profile.init_script())
            await self._evasions.apply_stealth_async(context)

            now = self._clock()
            session = StealthSession(
                domain=key,
                context=context,
                profile=profile,
                created_at=now,
                last_used_at=now,
            )
            self._sessions[key] = session
            log_event(
                logger,
                logging.INFO,
                "stealth_session_created",
                domain=key,
                viewport=f"{profile.viewport_width}x{profile.viewport_height}",
                locale=profile.locale,
                timezone=profile.timezone_id,
            )
            return session

    async def close(self, domain: str) -> bool:
        key = domain.strip().lower()
        async with self._locks.hold(key):
            session = self._sessions.pop(key, None)
            if session is None:
                return False
            await self._close_context(session)
            return True

    async def evict_idle(self, max_idle_seconds: float | None = None) -> list[str]:
        limit = self._settings.session_idle_seconds if max_idle_seconds is None else max_idle_seconds
        now = self._clock()
        idle = [
            domain
            for domain, session in list(self._sessions.items())
            if now - session.last_used_at >= limit
        ]
        evicted = [domain for domain in idle if await self.close(domain)]
        if evicted:
            log_event(logger, logging.INFO, "stealth_sessions_evicted", domains=evicted)
        return evicted

    async def close_all(self) -> None:
        for domain in list(self._sessions):
            await self.close(domain)
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        log_event(logger, logging.INFO, "browser_stopped")

    def active_domains(self) -> list[str]:
        return sorted(self._sessions)

    def session_count(self) -> int:
        return len(self._sessions)

    async def _close_context(self, session: StealthSession) -> None:
        try:
            await session.context.close()
        except Exception as exc:
            log_event(
                logger,
                logging.WARNING,
                "stealth_session_close_failed",
                domain=session.domain,
                error=str(exc),
            )
        else:
            log_event(logger, logging.INFO, "stealth_session_closed", domain=session.domain)
