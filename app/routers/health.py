from datetime import datetime, timezone
import time

from fastapi import APIRouter

from app.schemas.purchase import HealthOut

router = APIRouter(prefix="/health", tags=["health"])

_STARTED = time.monotonic()


@router.get("", response_model=HealthOut)
async def health():
    return HealthOut(
        status="ok",
        uptime=round(time.monotonic() - _STARTED, 3),
        timestamp=datetime.now(timezone.utc),
    )
