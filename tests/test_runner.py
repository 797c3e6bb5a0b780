import asyncio

from app.core.logging import PURCHASE_LOGGER, get_logger, get_job_id, setup_logging
from app.schemas.purchase import PurchaseParams
from app.services.jobs import JobRegistry, JobStatus
from app.services.runner import JobRunner, run_job


def _job(reg):
    return reg.create(PurchaseParams(name="X", quantity=1, date="2025-5-31"))


def test_run_job_completes():
    reg = JobRegistry()
    job = _job(reg)
    seen = {}

    async def proc(params):
        seen["status"] = reg.get(job.id).status
        seen["job_id"] = get_job_id()
        return 42

    asyncio.run(run_job(reg, job.id, proc))
    final = reg.get(job.id)
    assert seen == {"status": JobStatus.RUNNING, "job_id": job.id}
    assert final.status is JobStatus.COMPLETED
    assert final.result == 42
    assert get_job_id() == "-"


def test_empty_exception_message_falls_back_to_type():
    reg = JobRegistry()
    job = _job(reg)

    async def proc(params):
        raise TimeoutError()

    asyncio.run(run_job(reg, job.id, proc))
    final = reg.get(job.id)
    assert final.status is JobStatus.FAILED
    assert final.error == "TimeoutError"


def test_job_deleted_while_running_is_left_alone():
    reg = JobRegistry()
    job = _job(reg)

    async def proc(params):
        reg.delete(job.id)
        return "ignored"

    asyncio.run(run_job(reg, job.id, proc))
    assert reg.get(job.id) is None


def test_missing_job_is_skipped():
    reg = JobRegistry()
    called = []

    async def proc(params):
        called.append(params)

    asyncio.run(run_job(reg, "job_missing", proc))
    assert called == []


def test_purchase_logger_lines_reach_only_their_job():
    setup_logging("INFO")
    log = get_logger(f"{PURCHASE_LOGGER}.test")
    reg = JobRegistry()
    a, b = _job(reg), _job(reg)

    async def proc(params):
        log.info("step for %s", get_job_id())
        await asyncio.sleep(0.01)
        log.info("second step for %s", get_job_id())

    async def both():
        await asyncio.gather(run_job(reg, a.id, proc), run_job(reg, b.id, proc))

    asyncio.run(both())
    for job in (a, b):
        logs = reg.get(job.id).logs
        assert logs[2:4] == [f"step for {job.id}", f"second step for {job.id}"]


def test_shutdown_cancels_in_flight_jobs():
    reg = JobRegistry()
    job = _job(reg)

    async def forever(params):
        await asyncio.sleep(3600)

    async def scenario():
        runner = JobRunner(reg, forever)
        runner.spawn(job.id)
        await asyncio.sleep(0.01)
        assert runner.in_flight == 1
        await runner.shutdown()
        assert runner.in_flight == 0

    asyncio.run(scenario())
    final = reg.get(job.id)
    assert final.status is JobStatus.FAILED
    assert "cancelled" in final.error
