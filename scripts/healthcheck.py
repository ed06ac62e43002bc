"""
Container health check for the scrape API.

Healthy means GET /health answers 200 with `status == "ok"`. The queue
summary is echoed so `docker inspect` shows worker load.
"""

from __future__ import annotations

import os

import requests


def _health_url() -> str:
    base = os.getenv("HEALTHCHECK_BASE_URL") or f"http://127.0.0.1:{os.getenv('PORT', '8000')}"
    return base.rstrip("/") + os.getenv("HEALTHCHECK_PATH", "/health")


def main() -> int:
    try:
        response = requests.get(_health_url(), timeout=float(os.getenv("HEALTHCHECK_TIMEOUT", "2")))
        body = response.json() if response.ok else {}
    except (requests.RequestException, ValueError) as exc:
        print(f"unhealthy: {exc}")
        return 1

    if body.get("status") != "ok":
        print(f"unhealthy: HTTP {response.status_code}")
        return 1

    queued = body.get("queuedJobs") or {}
    print(
        f"ok processing={body.get('processingJobs', 0)} "
        + " ".join(f"{priority}={count}" for priority, count in queued.items())
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
