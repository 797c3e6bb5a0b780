# app/services/runner.py
"""
Background execution of purchase jobs.

The submission route hands a job id to ``JobRunner.start`` after its response
has been sent; the job then runs as its own asyncio task on the server loop.
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Set

from app.core.logging import get_logger, reset_job_context, set_job_context
from app.schemas.purchase import PurchaseParams
from app.services.jobs import JobRegistry

logger = get_logger(__name__)

PurchaseProcedure = Callable[[PurchaseParams], Awaitable[Any]]


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def run_job(registry: JobRegistry, job_id: str,
                  procedure: PurchaseProcedure) -> None:
    job = registry.get(job_id)
    if job is None:
        logger.warning("[runner] job %s vanished before start", job_id)
        return

    tokens = set_job_context(job_id, partial(registry.append_log, job_id))
    try:
        registry.mark_running(job_id)
        logger.info("[runner] %s started: %s x%d on %s", job_id,
                    job.params.name, job.params.quantity, job.params.date)
        try:
            result = await procedure(job.params)
        except asyncio.CancelledError:
            registry.mark_failed(job_id, "Purchase cancelled (server shutdown)")
            raise
        except Exception as e:
            logger.exception("[runner] purchase job %s failed", job_id)
            registry.mark_failed(job_id, _error_message(e))
            return
        registry.mark_completed(job_id, result)
        logger.info("[runner] %s completed", job_id)
    finally:
        reset_job_context(tokens)


class JobRunner:
    """Owns the tasks of in-flight jobs so they are not garbage collected."""

    def __init__(self, registry: JobRegistry, procedure: PurchaseProcedure):
        self.registry = registry
        self.procedure = procedure
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, job_id: str) -> asyncio.Task:
        task = asyncio.create_task(run_job(self.registry, job_id, self.procedure),
                                   name=f"purchase-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self, job_id: str) -> None:
        # coroutine form of spawn, for BackgroundTasks (sync callables would
        # run in a worker thread without an event loop)
        self.spawn(job_id)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        logger.info("[runner] cancelling %d in-flight job(s)", len(self._tasks))
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
