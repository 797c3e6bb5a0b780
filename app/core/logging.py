# app/core/logging.py
from __future__ import annotations
import logging
import logging.config
from contextvars import ContextVar, Token
from typing import Callable, Optional

# ── per-job context: which job the current task works for, and where its
#    progress lines go (usually JobRegistry.append_log bound to that job)
_JOB_ID: ContextVar[str] = ContextVar("_JOB_ID", default="-")
_JOB_SINK: ContextVar[Optional[Callable[[str], object]]] = ContextVar(
    "_JOB_SINK", default=None)

PURCHASE_LOGGER = "usj.purchase"


def set_job_context(job_id: str,
                    sink: Optional[Callable[[str], object]] = None) -> tuple[Token, Token]:
    return _JOB_ID.set(job_id), _JOB_SINK.set(sink)


def reset_job_context(tokens: tuple[Token, Token]) -> None:
    id_token, sink_token = tokens
    _JOB_SINK.reset(sink_token)
    _JOB_ID.reset(id_token)


def get_job_id() -> str:
    return _JOB_ID.get()


class JobContextFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = get_job_id()
        return True


class JobLogHandler(logging.Handler):
    """Copies purchase progress into the running job's log (INFO and up)."""

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)

    def emit(self, record: logging.LogRecord) -> None:
        sink = _JOB_SINK.get()
        if sink is None:
            return
        try:
            sink(record.getMessage())
        except Exception:
            self.handleError(record)


def setup_logging(level: str = "INFO") -> None:
    fmt = "[%(levelname)s] %(asctime)s %(name)s job=%(job_id)s :: %(message)s"
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "ctx": {"()": JobContextFilter},
        },
        "formatters": {"default": {"format": fmt}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "filters": ["ctx"],
                "formatter": "default",
            },
            "job": {
                "()": JobLogHandler,
                "level": "INFO",
            },
        },
        "loggers": {
            "": {  # root
                "handlers": ["console"],
                "level": level,
            },
            PURCHASE_LOGGER: {
                "handlers": ["console", "job"],
                "level": "DEBUG",
                "propagate": False,
            },
            "uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
        },
    }
    logging.config.dictConfig(config)


def get_logger(name: str = "usj") -> logging.Logger:
    return logging.getLogger(name)


logger = get_logger("usj")
