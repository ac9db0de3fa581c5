"""
Enqueue product URLs for one brand and crawl them until the queue drains.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import replace
from pathlib import Path

from crawler.config.loader import get_crawler_settings
from crawler.logging_utils import configure_logging
from crawler.service import CrawlerService
from crawler.sinks.memory import InMemoryProductSink


def _read_urls(args: argparse.Namespace) -> list[str]:
    urls = list(args.urls)
    if args.urls_file:
        for line in Path(args.urls_file).read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    return urls


async def _run(args: argparse.Namespace) -> dict[str, object]:
    settings = get_crawler_settings()
    if args.store:
        settings = replace(settings, store_backend=args.store)
    if args.headed:
        settings = replace(settings, browser=replace(settings.browser, headless=False))

    sink = InMemoryProductSink()
    service = CrawlerService.from_settings(settings, sink=sink)

    urls = _read_urls(args)
    if args.catalog:
        submitted = service.schedule_brand_catalog(args.brand, urls, priority=args.priority)
    else:
        submitted = service.add_bulk_jobs(
            [{"url": url, "brand": args.brand} for url in urls],
            priority=args.priority,
        )

    await service.start(args.concurrency)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + args.timeout
    try:
        while loop.time() < deadline:
            stats = service.get_queue_stats()
            if stats.active + stats.waiting + stats.delayed == 0:
                break
            await asyncio.sleep(1.0)
    finally:
        await service.stop(graceful=True)

    return {
        "brand": args.brand,
        "enqueued": submitted.enqueued,
        "rejected": [
            {"index": error.index, "url": error.url, "error": error.error}
            for error in submitted.errors
        ],
        "queue": service.get_queue_stats().as_dict(),
        "products": [product.to_dict() for product in sink.products],
        "failures": [
            {"job_id": record.job_id, "url": record.url, "reason": record.reason, "attempts": record.attempts}
            for record in sink.failures
        ],
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Crawl product pages for one brand.")
    parser.add_argument("urls", nargs="*", help="Product page URLs.")
    parser.add_argument("--brand", required=True, help="Brand name or alias, e.g. zara, h&m, nike.")
    parser.add_argument("--urls-file", dest="urls_file", default=None, help="File with one URL per line.")
    parser.add_argument("--priority", type=int, default=0, help="Job priority 0-100.")
    parser.add_argument("--concurrency", type=int, default=None, help="Worker count override.")
    parser.add_argument(
        "--store",
        default=None,
        help="Job store backend override: memory or sqlalchemy.",
    )
    parser.add_argument(
        "--catalog",
        action="store_true",
        help="Schedule as a brand catalog with per-brand queue delay.",
    )
    parser.add_argument("--headed", action="store_true", help="Run the browser with a visible window.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=900.0,
        help="Seconds to wait for the queue to drain before stopping.",
    )
    parser.add_argument("--log-level", dest="log_level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level)
    if not args.urls and not args.urls_file:
        parser.error("provide at least one URL or --urls-file")

    payload = asyncio.run(_run(args))
    print(json.dumps(payload, indent=2, default=str))
    return 0 if not payload["failures"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
