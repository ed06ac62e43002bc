"""
Queue one domain scrape from the CLI and optionally wait for it to finish.
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import replace

from app.config import get_scrape_settings
from app.domain.scrape_job import PRIORITY_ORDER
from app.scraping.storage import build_job_store
from app.services.job_manager import build_job_manager


def main() -> int:
    parser = argparse.ArgumentParser(description="Queue a domain scrape job.")
    parser.add_argument("--domain", required=True, help="Domain to crawl, e.g. example.com.")
    parser.add_argument("--depth", type=int, default=None, help="Maximum link depth from the root page.")
    parser.add_argument("--max-pages", dest="max_pages", type=int, default=None, help="Page limit.")
    parser.add_argument("--priority", choices=PRIORITY_ORDER, default="normal")
    parser.add_argument(
        "--extractors",
        default=None,
        help="Comma-separated extractor kinds; all when omitted.",
    )
    parser.add_argument("--bypass-cooldown", dest="bypass_cooldown", action="store_true")
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use the in-process store instead of the configured database.",
    )
    parser.add_argument("--wait", action="store_true", help="Block until the job finishes and print results.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    settings = get_scrape_settings()
    if args.memory:
        settings = replace(settings, store_backend="memory")
    store = build_job_store(settings)
    manager = build_job_manager(store=store, settings=settings)
    manager.start()

    try:
        job = manager.build_job(
            domain=args.domain,
            depth=args.depth,
            priority=args.priority,
            max_pages=args.max_pages,
            extractors=args.extractors.split(",") if args.extractors else None,
            bypass_cooldown=args.bypass_cooldown,
        )
        submitted = manager.submit(job)
        payload: dict[str, object] = {
            "jobId": submitted.job_id,
            "status": submitted.status,
            "estimatedTime": submitted.estimated_time,
        }

        if args.wait:
            current = manager.status(submitted.job_id)
            while current is not None and not current.is_terminal:
                time.sleep(1)
                current = manager.status(submitted.job_id)
            if current is not None:
                payload.update(current.event_payload())
                payload["result"] = manager.get_results(submitted.job_id)
    except ValueError as exc:
        parser.error(str(exc))
    finally:
        manager.shutdown()

    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
