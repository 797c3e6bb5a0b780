import asyncio
from datetime import date
from types import SimpleNamespace

import pytest
from langchain_core.messages import AIMessage

from app.schemas.purchase import PurchaseParams
from app.services.purchaser import CaptchaError, PurchaseStepError, build_steps, run_steps
from app.services.purchaser.captcha import clean_captcha_text, is_plausible, read_captcha
from app.services.purchaser.dates import (
    months_between,
    parse_calendar_heading,
    parse_visit_date,
)
from app.services.purchaser.flow import Step


# ----- dates -----
def test_parse_visit_date_accepts_loose_format():
    assert parse_visit_date("2025-5-31") == date(2025, 5, 31)
    assert parse_visit_date("2025-05-03") == date(2025, 5, 3)


@pytest.mark.parametrize("bad", ["2025-2-30", "31-05-2025", "soon"])
def test_parse_visit_date_rejects_impossible(bad):
    with pytest.raises(ValueError):
        parse_visit_date(bad)


def test_months_between():
    assert months_between((2025, 3), (2025, 5)) == 2
    assert months_between((2024, 11), (2025, 2)) == 3
    assert months_between((2025, 5), (2025, 5)) == 0
    assert months_between((2025, 6), (2025, 5)) == -1


@pytest.mark.parametrize("text, expected", [
    ("May 2025", (2025, 5)),
    ("2025  March", (2025, 3)),
    ("2025/5", (2025, 5)),
    ("2025-12", (2025, 12)),
    ("2025年5月", (2025, 5)),
    ("Sep 2026", (2026, 9)),
    ("no month here", None),
    ("", None),
])
def test_parse_calendar_heading(text, expected):
    assert parse_calendar_heading(text) == expected


# ----- captcha -----
@pytest.mark.parametrize("raw, expected", [
    ("AB12C", "AB12C"),
    ("The code is: AB12C.", "AB12C"),
    ("It says 'x7Kp9'", "x7Kp9"),
    ("  \"Q 4 Z T 8\"  ", "Q4ZT8"),
    ("", ""),
])
def test_clean_captcha_text(raw, expected):
    assert clean_captcha_text(raw) == expected


def test_is_plausible_bounds():
    assert not is_plausible("abc")
    assert is_plausible("abcd")
    assert is_plausible("abcdefgh")
    assert not is_plausible("abcdefghi")


class FakeVision:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return AIMessage(content=reply)


def test_read_captcha_retries_until_plausible():
    llm = FakeVision(RuntimeError("rate limited"), "Sorry, I cannot read that image", "The code is Q4ZT8")
    assert asyncio.run(read_captcha(b"\x89PNG", llm=llm)) == "Q4ZT8"
    assert len(llm.calls) == 3

    human = llm.calls[0][1]
    parts = {p["type"]: p for p in human.content}
    assert parts["image_url"]["image_url"]["url"].startswith("data:image/png;base64,")


def test_read_captcha_gives_up():
    llm = FakeVision("??", "no", "I am unable to read this")
    with pytest.raises(CaptchaError):
        asyncio.run(read_captcha(b"\x89PNG", llm=llm))


# ----- step runner -----
def _ctx():
    return SimpleNamespace(calls=[])


def test_build_steps_follows_the_checkout_order():
    steps = build_steps(PurchaseParams(name="Express Pass 7", quantity=2, date="2025-5-31"))
    names = [s.name for s in steps]
    assert names[0] == "Find Express Pass 7 product"
    assert names[1] == "Increase quantity to 2"
    assert names.index("Click Add to Cart") < names.index("Click Checkout")
    assert names.index("Handle Captcha Verification") < names.index("Click Continue")
    assert names[-1] == "Fill Checkout Country"
    optional = {s.name for s in steps if s.best_effort}
    assert "Fill Form Details" in optional
    assert "Handle Captcha Verification" not in optional


def test_run_steps_retries_flaky_step():
    attempts = []

    async def flaky(ctx):
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("not yet")

    async def after(ctx):
        ctx.calls.append("after")

    ctx = _ctx()
    report = asyncio.run(run_steps(ctx, [Step("flaky", flaky), Step("after", after)],
                                   retries=3, retry_delay_ms=0))
    assert len(attempts) == 3
    assert report.completed == ["flaky", "after"]
    assert report.skipped == []
    assert ctx.calls == ["after"]


def test_run_steps_gives_up_on_required_step():
    attempts = []

    async def broken(ctx):
        attempts.append(1)
        raise RuntimeError("nope")

    async def never(ctx):
        raise AssertionError("should not run")

    with pytest.raises(PurchaseStepError) as info:
        asyncio.run(run_steps(_ctx(), [Step("broken", broken), Step("never", never)],
                              retries=2, retry_delay_ms=0))
    assert len(attempts) == 3
    assert str(info.value) == "Failed to complete step broken after 2 retries: nope"


def test_run_steps_skips_best_effort_failures():
    attempts = []

    async def optional(ctx):
        attempts.append(1)
        raise RuntimeError("field missing")

    async def after(ctx):
        ctx.calls.append("after")

    ctx = _ctx()
    report = asyncio.run(run_steps(
        ctx, [Step("optional", optional, best_effort=True), Step("after", after)],
        retries=3, retry_delay_ms=0))
    assert attempts == [1]
    assert report.skipped == ["optional"]
    assert report.completed == ["after"]
