import pytest

from app.schemas.purchase import PurchaseParams
from app.services.jobs import InvalidJobTransition, JobRegistry, JobStatus


def _params(name="X"):
    return PurchaseParams(name=name, quantity=2, date="2025-5-31")


def test_create_seeds_queued_job():
    reg = JobRegistry()
    job = reg.create(_params())
    assert job.status is JobStatus.QUEUED
    assert job.logs == ["Purchase job created"]
    assert job.completed_at is None
    assert job.error is None and job.result is None
    assert reg.get(job.id).params.name == "X"


def test_ids_are_unique():
    reg = JobRegistry()
    ids = {reg.create(_params()).id for _ in range(200)}
    assert len(ids) == 200


def test_list_keeps_creation_order():
    reg = JobRegistry()
    ids = [reg.create(_params(f"P{i}")).id for i in range(5)]
    assert [j.id for j in reg.list()] == ids


def test_get_returns_a_snapshot():
    reg = JobRegistry()
    job = reg.create(_params())
    snap = reg.get(job.id)
    snap.logs.append("tampered")
    assert reg.get(job.id).logs == ["Purchase job created"]


def test_happy_path_transitions():
    reg = JobRegistry()
    job = reg.create(_params())

    assert reg.mark_running(job.id)
    running = reg.get(job.id)
    assert running.status is JobStatus.RUNNING
    assert running.completed_at is None
    assert running.updated_at >= job.updated_at

    assert reg.mark_completed(job.id, {"ok": True})
    done = reg.get(job.id)
    assert done.status is JobStatus.COMPLETED
    assert done.result == {"ok": True}
    assert done.completed_at is not None
    assert done.logs == [
        "Purchase job created",
        "Starting ticket purchase process",
        "Purchase process completed successfully",
    ]


def test_failure_records_error():
    reg = JobRegistry()
    job = reg.create(_params())
    reg.mark_running(job.id)
    reg.mark_failed(job.id, "selector not found")
    failed = reg.get(job.id)
    assert failed.status is JobStatus.FAILED
    assert failed.error == "selector not found"
    assert failed.completed_at is not None
    assert failed.logs[-1] == "Error: selector not found"


@pytest.mark.parametrize("setup, move", [
    ([], "mark_completed"),            # queued -> completed skips running
    (["mark_running"], "mark_running"),
    (["mark_running", "mark_completed"], "mark_running"),
    (["mark_running", "mark_failed"], "mark_completed"),
])
def test_illegal_transitions_raise(setup, move):
    reg = JobRegistry()
    job = reg.create(_params())
    for name in setup:
        getattr(reg, name)(job.id, *(["err"] if name == "mark_failed" else []))
    before = reg.get(job.id)
    args = ["err"] if move == "mark_failed" else []
    with pytest.raises(InvalidJobTransition):
        getattr(reg, move)(job.id, *args)
    after = reg.get(job.id)
    assert after.status is before.status
    assert after.logs == before.logs


def test_updates_to_deleted_job_are_ignored():
    reg = JobRegistry()
    job = reg.create(_params())
    assert reg.delete(job.id)
    assert reg.mark_running(job.id) is False
    assert reg.append_log(job.id, "late line") is False
    assert reg.get(job.id) is None


def test_delete_unknown_returns_false():
    reg = JobRegistry()
    reg.create(_params())
    assert reg.delete("job_unknown") is False
    assert len(reg) == 1


def test_delete_terminal_counts_exactly():
    reg = JobRegistry()
    keep_q = reg.create(_params()).id
    keep_r = reg.create(_params()).id
    reg.mark_running(keep_r)
    for outcome in ("ok", "fail", "ok"):
        jid = reg.create(_params()).id
        reg.mark_running(jid)
        if outcome == "ok":
            reg.mark_completed(jid)
        else:
            reg.mark_failed(jid, "x")

    assert reg.delete_terminal() == 3
    assert [j.id for j in reg.list()] == [keep_q, keep_r]
    assert reg.delete_terminal() == 0
