# app/routers/purchase.py
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.purchase import (
    CleanupOut,
    JobEnvelope,
    JobList,
    JobOut,
    JobSummary,
    Msg,
    PurchaseAccepted,
    PurchaseRequest,
)
from app.services.jobs import Job, JobRegistry
from app.services.runner import JobRunner
from app.utils.deps import get_registry, get_runner

logger = get_logger(__name__)

router = APIRouter(tags=["purchase"])


def _job_out(job: Job, log_tail: int) -> JobOut:
    return JobOut(
        id=job.id,
        status=job.status.value,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
        params=job.params,
        logs=job.logs[-log_tail:] if log_tail > 0 else [],
        error=job.error,
        result=job.result,
    )


def _job_summary(job: Job) -> JobSummary:
    return JobSummary(
        id=job.id,
        status=job.status.value,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
        params=job.params,
        has_error=job.error is not None,
    )


@router.post("/purchase", response_model=PurchaseAccepted, status_code=202)
async def create_purchase(
        body: PurchaseRequest,
        response: Response,
        background_tasks: BackgroundTasks,
        registry: JobRegistry = Depends(get_registry),
        runner: JobRunner = Depends(get_runner),
):
    """
    Register a purchase job and return its id right away.
    The browser run is spawned only after this response is sent.
    """
    job = registry.create(body.to_params())
    logger.info("[purchase] %s queued: %s x%d on %s", job.id, body.name,
                body.quantity, body.date)
    background_tasks.add_task(runner.start, job.id)
    response.headers["Location"] = f"{settings.API_PREFIX}/purchase/{job.id}"
    return PurchaseAccepted(job_id=job.id, status=job.status.value)


@router.get("/purchase/{job_id}", response_model=JobEnvelope)
async def get_purchase(job_id: str, registry: JobRegistry = Depends(get_registry)):
    job = registry.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobEnvelope(job=_job_out(job, settings.JOB_LOG_TAIL))


@router.get("/purchases", response_model=JobList)
async def list_purchases(registry: JobRegistry = Depends(get_registry)):
    jobs = [_job_summary(j) for j in registry.list()]
    return JobList(count=len(jobs), jobs=jobs)


@router.delete("/purchases/cleanup", response_model=CleanupOut)
async def cleanup_purchases(registry: JobRegistry = Depends(get_registry)):
    removed = registry.delete_terminal()
    logger.info("[purchase] cleanup removed %d job(s)", removed)
    return CleanupOut(message=f"Removed {removed} completed/failed job(s)",
                      removed=removed)


@router.delete("/purchase/{job_id}", response_model=Msg)
async def delete_purchase(job_id: str, registry: JobRegistry = Depends(get_registry)):
    if not registry.delete(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return Msg(message=f"Job {job_id} deleted")
