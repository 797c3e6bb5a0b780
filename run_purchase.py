# run_purchase.py
"""Run the browser purchase once, without the API (handy while tuning selectors)."""
from __future__ import annotations
import argparse
import asyncio
import json
import sys

from pydantic import ValidationError

from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.schemas.purchase import PurchaseRequest
from app.services.purchaser import PurchaseError, purchase_ticket

logger = get_logger("usj.cli")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Buy an Express Pass through the website")
    p.add_argument("--name", required=True, help="exact product title")
    p.add_argument("--quantity", type=int, default=1, help="number of tickets")
    p.add_argument("--date", required=True, help="visit date, YYYY-M-D")
    p.add_argument("--headless", action="store_true", help="hide the browser window")
    p.add_argument("--no-screenshots", action="store_true", help="skip step screenshots")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    try:
        req = PurchaseRequest(name=args.name, quantity=args.quantity, date=args.date)
    except ValidationError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return 2

    cfg = settings.model_copy(update={
        "HEADLESS": args.headless or settings.HEADLESS,
        "SCREENSHOTS_ENABLED": settings.SCREENSHOTS_ENABLED and not args.no_screenshots,
    })
    try:
        result = asyncio.run(purchase_ticket(req.to_params(), cfg))
    except PurchaseError as e:
        logger.error("Purchase failed: %s", e)
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
