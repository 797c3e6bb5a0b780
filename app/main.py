# app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.routers import health, purchase
from app.services.jobs import JobRegistry
from app.services.purchaser import purchase_ticket
from app.services.runner import JobRunner, PurchaseProcedure

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────
# Error envelope: every failure is {"success": false, "error": "..."}
# ─────────────────────────────────────────────────────────────
def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        field = ".".join(loc)
        if err.get("type") == "missing":
            messages.append(f"Missing required parameter: {field}")
        elif err.get("type") in ("json_invalid", "model_attributes_type", "dict_type"):
            messages.append("Request body must be a JSON object.")
        else:
            msg = str(err.get("msg", "Invalid value"))
            messages.append(msg.removeprefix("Value error, "))
    return " ".join(dict.fromkeys(messages)) or "Invalid request."


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400,
                        content={"success": False, "error": _validation_message(exc)})


async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code,
                        content={"success": False, "error": str(exc.detail)},
                        headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[api] unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500,
                        content={"success": False, "error": "Internal server error"})


def create_app(procedure: Optional[PurchaseProcedure] = None,
               registry: Optional[JobRegistry] = None) -> FastAPI:
    """
    Build the API. ``procedure`` replaces the browser purchase (tests pass a
    stub); ``registry`` lets callers share or inspect the job store.
    """
    setup_logging(settings.LOG_LEVEL)

    registry = registry if registry is not None else JobRegistry()
    runner = JobRunner(registry, procedure or purchase_ticket)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[startup] %s (%s) listening on :%d%s",
                    settings.APP_NAME, settings.APP_ENV, settings.PORT, settings.API_PREFIX)
        if not settings.has_vision_key:
            logger.warning("[startup] OPENAI_API_KEY not set, CAPTCHA verification will fail")
        yield  # application runs
        await runner.shutdown()

    app = FastAPI(
        title=settings.APP_NAME,
        docs_url="/docs",
        openapi_url="/openapi.json",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.runner = runner

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health, prefix=settings.API_PREFIX)
    app.include_router(purchase, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        return {"name": settings.APP_NAME, "env": settings.APP_ENV, "message": "See /docs"}

    return app


app = create_app()
