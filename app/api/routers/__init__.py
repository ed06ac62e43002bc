"""
app/api/routers package marker.
"""

from app.api.routers.job_events import router as job_events_router
from app.api.routers.scrape_jobs import router as scrape_jobs_router

__all__ = [
    "job_events_router",
    "scrape_jobs_router",
]
