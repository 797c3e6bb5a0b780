# app/services/purchaser/flow.py
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import Settings, settings
from app.core.logging import PURCHASE_LOGGER, get_job_id, get_logger
from app.schemas.purchase import PurchaseParams
from app.services.purchaser import steps as s
from app.services.purchaser.browser import Screenshotter, open_browser
from app.services.purchaser.dates import parse_visit_date
from app.services.purchaser.errors import PurchaseStepError

logger = get_logger(f"{PURCHASE_LOGGER}.flow")

StepAction = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class Step:
    name: str
    action: StepAction
    # best-effort steps are tried once and skipped on failure
    best_effort: bool = False


@dataclass
class StepReport:
    completed: List[str]
    skipped: List[str]


def build_steps(params: PurchaseParams) -> List[Step]:
    return [
        Step(f"Find {params.name} product", s.find_product),
        Step(f"Increase quantity to {params.quantity}", s.increase_quantity),
        Step("Click SELECT A DATE button", s.open_date_picker),
        Step("Navigate to visit month", s.navigate_to_month),
        Step(f"Select date {params.date}", s.select_day),
        Step("Click Next", s.click_next),
        Step("Select first session", s.select_first_session),
        Step("Click Add to Cart", s.add_to_cart),
        Step("Click Next Step", s.next_step),
        Step("Click Second Next Step", s.next_step),
        Step("Click Checkout", s.checkout),
        Step("Click I Agree", s.agree_to_notice),
        Step("Fill Form Details", s.fill_customer_details, best_effort=True),
        Step("Fill Nationality", s.fill_nationality, best_effort=True),
        Step("Fill Place of Residence", s.fill_residence, best_effort=True),
        Step("Handle Captcha Verification", s.verify_captcha),
        Step("Check Terms of Service Checkbox", s.accept_terms, best_effort=True),
        Step("Check Cancellation Policy Checkbox", s.accept_cancellation_policy,
             best_effort=True),
        Step("Click Continue", s.click_continue),
        Step("Click Credit Card", s.choose_credit_card),
        Step("Checkout Continue", s.submit_payment_method),
        Step("Fill Checkout", s.fill_card_details, best_effort=True),
        Step("Fill Checkout Country", s.fill_card_country, best_effort=True),
    ]


async def run_steps(ctx: Any, plan: List[Step], retries: int, retry_delay_ms: int,
                    shots: Optional[Screenshotter] = None) -> StepReport:
    """
    Run ``plan`` in order. A required step gets ``1 + retries`` attempts and
    raises PurchaseStepError when they are used up.
    """
    page = getattr(ctx, "page", None)
    report = StepReport(completed=[], skipped=[])

    for step in plan:
        attempts = 1 if step.best_effort else retries + 1
        logger.info("---- Processing step: %s ----", step.name)
        for attempt in range(attempts):
            suffix = f"_retry{attempt}" if attempt else ""
            if shots is not None and page is not None:
                await shots.take(page, f"before_{step.name}{suffix}")
            try:
                await step.action(ctx)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning("Error executing step %s, attempt %d: %s",
                               step.name, attempt + 1, last_error)
                if shots is not None and page is not None:
                    await shots.take(page, f"error_{step.name}{suffix}")
                if attempt + 1 < attempts:
                    logger.info("Retrying step \"%s\" (attempt %d of %d)",
                                step.name, attempt + 1, retries)
                    await asyncio.sleep(retry_delay_ms / 1000)
                    continue
                if step.best_effort:
                    logger.warning("Skipping optional step %s", step.name)
                    report.skipped.append(step.name)
                    break
                raise PurchaseStepError(step.name, retries, last_error) from e
            else:
                logger.info("Completed step: %s", step.name)
                report.completed.append(step.name)
                break

    logger.info("All steps processed successfully.")
    return report


async def purchase_ticket(params: PurchaseParams,
                          cfg: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Drive the Express Pass site from product list to the filled payment form.
    Returns a summary of what was done; raises on the first required step that fails.
    """
    cfg = cfg or settings
    visit_date = parse_visit_date(params.date)

    run_id = get_job_id()
    if run_id == "-":
        run_id = f"run_{uuid.uuid4().hex[:12]}"
    shots = Screenshotter(cfg.SCREENSHOT_DIR, run_id, enabled=cfg.SCREENSHOTS_ENABLED)

    logger.info("Starting purchase: %s x%d on %s", params.name, params.quantity,
                visit_date.isoformat())
    async with open_browser(cfg) as page:
        logger.info("Navigating to %s", cfg.TARGET_URL)
        await page.goto(cfg.TARGET_URL, wait_until="domcontentloaded")
        await page.wait_for_timeout(5 * cfg.STEP_SETTLE_MS)

        ctx = s.PurchaseContext(page=page, params=params, visit_date=visit_date,
                                cfg=cfg, shots=shots)
        report = await run_steps(ctx, build_steps(params), cfg.STEP_RETRIES,
                                 cfg.STEP_RETRY_DELAY_MS, shots=shots)
        await shots.take(page, "purchase_flow_finished", full_page=True)

    return {
        "product": params.name,
        "quantity": params.quantity,
        "date": visit_date.isoformat(),
        "stepsCompleted": report.completed,
        "skippedSteps": report.skipped,
        "screenshotDir": str(shots.directory) if shots.enabled else None,
        "finishedAt": datetime.now(timezone.utc).isoformat(),
    }
