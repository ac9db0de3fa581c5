"""
Immutable capture of a loaded page for side-effect-free extraction.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

from bs4 import BeautifulSoup

from crawler.logging_utils import log_event

logger = logging.getLogger(__name__)

_READ_GLOBAL_SCRIPT = """
(name) => {
    try {
        const value = window[name];
        if (value === undefined || value === null) {
            return null;
        }
        return JSON.parse(JSON.stringify(value));
    } catch (error) {
        return null;
    }
}
"""


@dataclass(frozen=True)
class PageSnapshot:
    """
    Page HTML plus any JavaScript globals read from the live page.
    """

    url: str
    html: str
    globals: dict[str, Any] = field(default_factory=dict)

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")

    def global_value(self, name: str) -> Any | None:
        """
        Resolve an in-page JSON state object by name.

        Looks at captured window globals first, then a JSON script tag with a
        matching id (``<script id="__NEXT_DATA__">``), then an inline
        ``window.NAME = {...}`` assignment.
        """

        value = self.globals.get(name)
        if value is not None:
            return value

        tag = self.soup.find("script", id=name)
        if tag is not None:
            parsed = _loads(tag.string or tag.get_text())
            if parsed is not None:
                return parsed

        pattern = re.compile(rf"window\.{re.escape(name)}\s*=\s*")
        for script in self.soup.find_all("script"):
            content = script.string or script.get_text()
            if not content or name not in content:
                continue
            match = pattern.search(content)
            if match is None:
                continue
            parsed = _raw_decode(content[match.end():])
            if parsed is not None:
                return parsed
        return None

    def embedded_value(self, key: str) -> Any | None:
        """
        Decode the JSON value following ``"key":`` inside an inline script.
        """

        pattern = re.compile(rf"""["']?{re.escape(key)}["']?\s*:\s*(?=[\[{{])""")
        for script in self.soup.find_all("script"):
            content = script.string or script.get_text()
            if not content or key not in content:
                continue
            for match in pattern.finditer(content):
                parsed = _raw_decode(content[match.end():])
                if parsed is not None:
                    return parsed
        return None


async def capture_snapshot(page: Any, *, global_names: tuple[str, ...] = ()) -> PageSnapshot:
    """
    Read HTML and the requested window globals from a live page.
    """

    html = await page.content()
    captured: dict[str, Any] = {}
    for name in global_names:
        try:
            value = await page.evaluate(_READ_GLOBAL_SCRIPT, name)
        except Exception as exc:
            log_event(
                logger,
                logging.DEBUG,
                "snapshot_global_unreadable",
                url=page.url,
                name=name,
                error=str(exc),
            )
            continue
        if value is not None:
            captured[name] = value
    return PageSnapshot(url=page.url, html=html, globals=captured)


def _loads(text: str | None) -> Any | None:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _raw_decode(text: str) -> Any | None:
    try:
        value, _ = json.JSONDecoder().raw_decode(text.lstrip())
    except json.JSONDecodeError:
        return None
    return value
