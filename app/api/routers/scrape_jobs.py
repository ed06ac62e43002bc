"""
app/api/routers/scrape_jobs.py

Scrape job submission, status, cancellation and result endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import get_job_manager
from app.domain.scrape_job import ALL_STATUSES, ScrapeJob
from app.schemas.scrape_jobs import (
    CancelJobResponse,
    ScrapeJobAcceptedResponse,
    ScrapeJobListResponse,
    ScrapeJobRequest,
    ScrapeJobStatusResponse,
    ScrapeResultResponse,
)
from app.scraping.errors import PersistenceError
from app.services.job_manager import JobManager

router = APIRouter(prefix="/api/scrape", tags=["scrape-jobs"])


def _store_unavailable(exc: PersistenceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Job store unavailable: {exc}",
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ScrapeJobAcceptedResponse,
)
def submit_scrape_job(
    payload: ScrapeJobRequest,
    manager: JobManager = Depends(get_job_manager),
) -> ScrapeJobAcceptedResponse:
    try:
        job = manager.build_job(
            domain=payload.domain,
            depth=payload.depth,
            priority=payload.priority,
            max_pages=payload.max_pages,
            extractors=payload.extractors,
            bypass_cooldown=payload.bypass_cooldown,
        )
        result = manager.submit(job)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc

    return ScrapeJobAcceptedResponse(
        job_id=result.job_id,
        status=result.status,
        estimated_time=result.estimated_time,
    )


@router.get("/status/{job_id}", response_model=ScrapeJobStatusResponse)
def get_scrape_job_status(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
) -> ScrapeJobStatusResponse:
    try:
        job = manager.status(job_id)
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scrape job not found: {job_id}",
        )
    return _to_status_response(job)


@router.post("/cancel/{job_id}", response_model=CancelJobResponse)
def cancel_scrape_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
) -> CancelJobResponse:
    outcome = manager.cancel(job_id)
    return CancelJobResponse(success=outcome.success, message=outcome.message)


@router.get("/jobs", response_model=ScrapeJobListResponse)
def list_scrape_jobs(
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    manager: JobManager = Depends(get_job_manager),
) -> ScrapeJobListResponse:
    if status_filter is not None and status_filter not in ALL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status '{status_filter}'. Allowed values: {', '.join(sorted(ALL_STATUSES))}.",
        )
    try:
        jobs = manager.list_jobs(status=status_filter, limit=limit, offset=offset)
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    return ScrapeJobListResponse(
        jobs=[_to_status_response(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


@router.get("/results/{job_id}", response_model=ScrapeResultResponse)
def get_scrape_results(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
) -> ScrapeResultResponse:
    try:
        job = manager.status(job_id)
        result = manager.get_results(job_id) if job is not None else None
    except PersistenceError as exc:
        raise _store_unavailable(exc) from exc
    if job is None or result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No results available for job: {job_id}",
        )
    return ScrapeResultResponse(job_id=job.job_id, domain=job.domain, result=result)


def _to_status_response(job: ScrapeJob) -> ScrapeJobStatusResponse:
    return ScrapeJobStatusResponse(
        job_id=job.job_id,
        domain=job.domain,
        status=job.status,
        progress=job.progress,
        message=job.message,
        priority=job.priority,
        depth=job.depth,
        max_pages=job.max_pages,
        extractors=list(job.extractors),
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        error=job.error,
    )
