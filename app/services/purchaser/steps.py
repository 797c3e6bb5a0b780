# app/services/purchaser/steps.py
"""
One coroutine per page interaction of the Express Pass checkout.

Every step takes the shared PurchaseContext and raises on failure; the
step runner in flow.py owns retries and screenshots. Element lookups go
through ordered selector lists, the first visible match wins.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from playwright.async_api import Locator, Page

from app.core.config import Settings
from app.core.logging import PURCHASE_LOGGER, get_logger
from app.schemas.purchase import PurchaseParams
from app.services.purchaser.browser import (
    Screenshotter,
    click_first,
    fill_first,
    find_first,
    highlight,
    require_first,
)
from app.services.purchaser.captcha import solve_captcha
from app.services.purchaser.dates import months_between, parse_calendar_heading
from app.services.purchaser.errors import ElementNotFound, PurchaseError

logger = get_logger(f"{PURCHASE_LOGGER}.steps")


@dataclass
class PurchaseContext:
    page: Page
    params: PurchaseParams
    visit_date: date
    cfg: Settings
    shots: Screenshotter
    product_card: Optional[Locator] = None
    captcha_code: Optional[str] = None
    notes: List[str] = field(default_factory=list)

    async def settle(self, factor: float = 1.0) -> None:
        await self.page.wait_for_timeout(int(self.cfg.STEP_SETTLE_MS * factor))


CALENDAR_SELECTORS = [".el-picker-panel", "[class*='calendar']", "[class*='datepicker']"]
PLUS_SELECTORS = [
    "span.plus",
    "span[class*='plus']",
    "button[class*='plus']",
    "[aria-label*='increase' i]",
]
DROPDOWN_OPTION = "div.el-select-dropdown.el-popper li"


# ─────────────────────────────────────────────────────────
# product / quantity / date
# ─────────────────────────────────────────────────────────
async def find_product(ctx: PurchaseContext) -> None:
    page, wanted = ctx.page, ctx.params.name
    await page.mouse.wheel(0, 500)
    await ctx.settle()

    titles = page.locator("h3")
    texts = [t.strip() for t in await titles.all_inner_texts()]
    logger.debug("Available products: %s", [t for t in texts if t])

    idx = next((i for i, t in enumerate(texts) if t == wanted), None)
    if idx is None:
        idx = next((i for i, t in enumerate(texts) if wanted in t), None)
    if idx is None:
        raise ElementNotFound(f"product {wanted!r}")

    title = titles.nth(idx)
    await highlight(title, "red")
    # nearest ancestor that owns a SELECT A DATE button is the product card
    card = title.locator(
        "xpath=ancestor::*[.//button[contains(translate(normalize-space(.), "
        "'abcdefghijklmnopqrstuvwxyz', 'ABCDEFGHIJKLMNOPQRSTUVWXYZ'), 'SELECT A DATE')]][1]")
    if await card.count() == 0:
        logger.warning("Found %r but no SELECT A DATE button next to it", texts[idx])
        return

    card_titles = [t.strip() for t in await card.locator("h3").all_inner_texts()]
    if card_titles and card_titles[0] != texts[idx]:
        raise PurchaseError(f"Found wrong card with title: {card_titles[0]}")

    ctx.product_card = card
    button = card.locator("button", has_text="SELECT A DATE").first
    await highlight(button)
    await button.click()
    logger.info("Found product %r and opened its date selection", texts[idx])


async def increase_quantity(ctx: PurchaseContext) -> None:
    root = ctx.product_card or ctx.page
    plus = await find_first(root, PLUS_SELECTORS)
    if plus is None and root is not ctx.page:
        plus = await find_first(ctx.page, PLUS_SELECTORS)
    if plus is None:
        raise ElementNotFound("quantity plus button", PLUS_SELECTORS)

    await highlight(plus, "red")
    for _ in range(ctx.params.quantity):
        await plus.click()
        await ctx.page.wait_for_timeout(150)
    logger.info("Set quantity to %d", ctx.params.quantity)


async def _calendar_visible(page: Page) -> bool:
    return await find_first(page, CALENDAR_SELECTORS) is not None


async def open_date_picker(ctx: PurchaseContext) -> None:
    page = ctx.page
    if await _calendar_visible(page):
        logger.info("Date picker already open")
        return

    selectors = [
        "button:has-text('SELECT A DATE')",
        "button:has-text('Select Date')",
        "button:has-text('Calendar')",
        "div:nth-of-type(11) button",
    ]
    if ctx.product_card is not None:
        button = ctx.product_card.locator("button").first
        if await button.count() and await button.is_visible():
            await button.click()
        else:
            await click_first(page, selectors, "SELECT A DATE button")
    else:
        await click_first(page, selectors, "SELECT A DATE button")

    await ctx.settle(2)
    if not await _calendar_visible(page):
        logger.warning("Calendar not visible after clicking SELECT A DATE")


async def navigate_to_month(ctx: PurchaseContext) -> None:
    page = ctx.page
    heading = await find_first(page, [
        ".calendar_title",
        "[class*='calendar'] [class*='title']",
        "[class*='calendar'] [class*='header']",
        ".el-date-picker__header-label",
    ])
    shown = parse_calendar_heading(await heading.inner_text()) if heading else None
    if shown is None:
        today = date.today()
        shown = (today.year, today.month)
        logger.info("Calendar month unreadable, assuming %d-%02d", *shown)

    target = (ctx.visit_date.year, ctx.visit_date.month)
    clicks = months_between(shown, target)
    if clicks < 0:
        raise PurchaseError(
            f"Visit date {ctx.params.date} is before the displayed month {shown[0]}-{shown[1]:02d}")

    for n in range(clicks):
        arrow = await find_first(page, [
            "img.calendar_arrow >> nth=-1",
            "button.el-icon-arrow-right",
            "button[aria-label*='next month' i]",
        ])
        if arrow is None:
            raise ElementNotFound("next-month arrow")
        await highlight(arrow)
        await arrow.click()
        logger.info("Calendar moved forward (%d/%d)", n + 1, clicks)
        await ctx.settle()
    logger.info("Calendar shows %d-%02d", *target)


async def select_day(ctx: PurchaseContext) -> None:
    page, day = ctx.page, ctx.visit_date.day
    exact_day = re.compile(rf"^\s*{day}\s*$")
    candidates = [
        page.locator("div.dateCell").filter(has=page.locator("p", has_text=exact_day)),
        page.locator("td.available").filter(has=page.locator("span", has_text=exact_day)),
    ]
    for cells in candidates:
        for i in range(min(await cells.count(), 5)):
            cell = cells.nth(i)
            if await cell.is_visible():
                await highlight(cell)
                await cell.click()
                logger.info("Clicked on date %d", day)
                await ctx.settle(0.5)
                return
    raise ElementNotFound(f"date cell {day}")


async def click_next(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, ["button:text-is('NEXT')", "button:text-is('Next')"],
                      "NEXT button")
    await ctx.settle(2)


async def select_first_session(ctx: PurchaseContext) -> None:
    page = ctx.page
    label = await find_first(page, ["label.el-radio:not(.is-disabled)"])
    if label is not None:
        await highlight(label)
        await label.click()
        logger.info("Selected first enabled session")
        return

    radios = page.locator("input[type='radio']")
    total = await radios.count()
    if total == 0:
        raise ElementNotFound("session radio buttons")
    for i in range(total):
        radio = radios.nth(i)
        enabled = await radio.evaluate(
            "el => !el.disabled && !el.closest('.is-disabled')")
        if enabled:
            await radio.check(force=True)
            logger.info("Selected session radio #%d of %d", i + 1, total)
            return
    raise PurchaseError(f"No enabled radio buttons found ({total} disabled)")


# ─────────────────────────────────────────────────────────
# cart / checkout
# ─────────────────────────────────────────────────────────
async def add_to_cart(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, ["button:has-text('ADD TO CART')"], "Add to Cart button")
    await ctx.settle(0.5)


async def next_step(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, [
        "button.el-button--primary:has-text('NEXT STEP')",
        "button:has-text('NEXT STEP')",
    ], "Next Step button")
    await ctx.settle(0.5)


async def checkout(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, [
        "button.checkout-btn:has-text('CHECKOUT')",
        "button.el-button--primary:has-text('CHECKOUT')",
    ], "Checkout button")
    await ctx.settle()


async def agree_to_notice(ctx: PurchaseContext) -> None:
    button = await require_first(ctx.page, [
        "div[role='dialog'][aria-label='NOTICE'] button:text-is('I Agree')",
        "button.el-button--primary:text-is('I Agree')",
        "button:text-is('I Agree')",
    ], "I Agree button")
    if await button.is_disabled():
        raise PurchaseError("I Agree button is disabled")
    await highlight(button)
    await button.click()
    logger.info("Accepted the purchase notice")
    await ctx.settle(5)


# ─────────────────────────────────────────────────────────
# order form
# ─────────────────────────────────────────────────────────
async def _pick_option(page: Page, input_selectors: List[str], query: str,
                       option: str, what: str) -> None:
    await fill_first(page, input_selectors, what, query)
    await page.wait_for_timeout(1000)
    choice = await find_first(page, [
        f"{DROPDOWN_OPTION}.hover",
        f"{DROPDOWN_OPTION}:has-text({option!r})",
        f"li.el-select-dropdown__item:has-text({option!r})",
    ])
    if choice is None:
        raise ElementNotFound(f"{what} option {option!r}")
    await choice.click()
    logger.info("Selected %s: %s", what, option)


async def fill_customer_details(ctx: PurchaseContext) -> None:
    page, cfg = ctx.page, ctx.cfg
    fields = [
        ("first name", ["form > div:nth-of-type(1) input", "input[placeholder*='first' i]"],
         cfg.CUSTOMER_FIRST_NAME),
        ("last name", ["form > div:nth-of-type(2) input", "input[placeholder*='last' i]"],
         cfg.CUSTOMER_LAST_NAME),
        ("phone number", ["div.reset-el-select > input", "input[type='tel']"],
         cfg.CUSTOMER_PHONE),
        ("address", ["div:nth-of-type(7) input", "input[placeholder*='address' i]"],
         cfg.CUSTOMER_ADDRESS),
        ("email", ["div:nth-of-type(8) input", "input[type='email']"],
         cfg.CUSTOMER_EMAIL),
        ("email confirmation", ["div:nth-of-type(9) input"], cfg.CUSTOMER_EMAIL),
    ]
    missing = [name for name, _, value in fields if not value]
    if missing:
        logger.warning("No value configured for: %s", ", ".join(missing))

    if cfg.CUSTOMER_PHONE_COUNTRY and cfg.CUSTOMER_PHONE_COUNTRY_LABEL:
        await _pick_option(page, ["div.pc-phoneNumber-input div.el-select input"],
                           cfg.CUSTOMER_PHONE_COUNTRY, cfg.CUSTOMER_PHONE_COUNTRY_LABEL,
                           "phone country code")
    for name, selectors, value in fields:
        if value:
            await fill_first(page, selectors, name, value)
    logger.info("Filled customer details")
    await ctx.settle()


async def fill_nationality(ctx: PurchaseContext) -> None:
    value = ctx.cfg.CUSTOMER_NATIONALITY
    if not value:
        logger.warning("CUSTOMER_NATIONALITY not configured, leaving field empty")
        return
    await _pick_option(ctx.page, ["div:nth-of-type(4) div.el-select input"],
                       value, value, "nationality")


async def fill_residence(ctx: PurchaseContext) -> None:
    value = ctx.cfg.CUSTOMER_RESIDENCE or ctx.cfg.CUSTOMER_NATIONALITY
    if not value:
        logger.warning("CUSTOMER_RESIDENCE not configured, leaving field empty")
        return
    await _pick_option(ctx.page, ["div:nth-of-type(5) div.el-select input"],
                       value, value, "place of residence")


async def verify_captcha(ctx: PurchaseContext) -> None:
    ctx.captcha_code = await solve_captcha(ctx.page)
    await ctx.settle()


async def _ensure_checked(box: Locator, what: str) -> None:
    checked = await box.evaluate("el => el.classList.contains('is-checked')")
    if not checked:
        await box.click()
    logger.info("Checked %s", what)


async def accept_terms(ctx: PurchaseContext) -> None:
    box = await require_first(ctx.page, ["div.el-checkbox", "label.el-checkbox"],
                              "terms of service checkbox")
    await _ensure_checked(box, "terms of service")
    await ctx.settle()


async def accept_cancellation_policy(ctx: PurchaseContext) -> None:
    page = ctx.page
    boxes = page.locator("div.el-checkbox, label.el-checkbox")
    if await boxes.count() > 1:
        box = boxes.nth(1)
    else:
        box = page.locator("div.terms.el-row").nth(1).locator("div.el-checkbox").first
        if await box.count() == 0:
            raise ElementNotFound("cancellation policy checkbox")
    await _ensure_checked(box, "cancellation policy")
    await ctx.settle()


# ─────────────────────────────────────────────────────────
# payment
# ─────────────────────────────────────────────────────────
async def click_continue(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, [
        "button.continue-btn-primary",
        "button:has-text('Continue')",
        "[role='button']:has-text('Continue')",
        "a.button:has-text('Continue')",
    ], "Continue button")
    await ctx.settle(2)


async def choose_credit_card(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, [
        "button:has-text('Credit Card')",
        "[role='button']:has-text('Credit Card')",
        "a.button:has-text('Credit Card')",
        "button:has-text('クレジットカード')",
    ], "Credit Card button")
    await ctx.settle(2)


async def submit_payment_method(ctx: PurchaseContext) -> None:
    await click_first(ctx.page, [
        "#paySubmit",
        "button:has-text('CONTINUE')",
        "div.container span > span:has-text('CONTINUE')",
    ], "checkout CONTINUE button")
    await ctx.settle(2)


async def fill_card_details(ctx: PurchaseContext) -> None:
    page, cfg = ctx.page, ctx.cfg
    fields = [
        ("card number", ["#cardNo"], cfg.CARD_NUMBER),
        ("card expiry", ["#card_exp"], cfg.CARD_EXPIRY),
        ("card CVV", ["#cvv", "div:nth-of-type(2) > div:nth-of-type(2) input"], cfg.CARD_CVV),
        ("card holder", ["#card_holder"], cfg.CARD_HOLDER),
        ("billing email", ["#email"], cfg.CUSTOMER_EMAIL),
        ("billing phone", ["#phone"], cfg.CUSTOMER_PHONE),
    ]
    for name, selectors, value in fields:
        if not value:
            logger.warning("No value configured for %s", name)
            continue
        target = await require_first(page, selectors, f"{name} field")
        # masked inputs only react to real key presses
        await target.press_sequentially(value, delay=50)
        await page.wait_for_timeout(300)
    logger.info("Filled card details")


async def fill_card_country(ctx: PurchaseContext) -> None:
    value = ctx.cfg.CARD_COUNTRY or ctx.cfg.CUSTOMER_NATIONALITY
    if not value:
        logger.warning("CARD_COUNTRY not configured, leaving field empty")
        return
    await _pick_option(ctx.page, ["#country"], value, value, "card country")
