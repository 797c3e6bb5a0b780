import time

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.jobs import JobRegistry

TERMINAL = ("completed", "failed")


async def ok_procedure(params):
    return {"product": params.name, "quantity": params.quantity, "date": params.date}


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def make_client(registry):
    opened = []

    def _make(procedure=ok_procedure, **kwargs):
        client = TestClient(create_app(procedure=procedure, registry=registry), **kwargs)
        client.__enter__()  # keep one event loop alive so spawned jobs can run
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    return make_client()


def _wait_for_job(client, job_id, until=TERMINAL, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        job = client.get(f"/api/purchase/{job_id}").json()["job"]
        if job["status"] in until:
            return job
        if time.monotonic() > deadline:
            raise AssertionError(f"job {job_id} stuck in {job['status']}")
        time.sleep(0.02)


@pytest.fixture
def wait_for_job():
    return _wait_for_job
