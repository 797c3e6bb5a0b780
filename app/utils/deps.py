# app/utils/deps.py
from fastapi import Request

from app.services.jobs import JobRegistry
from app.services.runner import JobRunner


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.registry


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner
