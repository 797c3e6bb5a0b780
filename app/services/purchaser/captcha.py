# app/services/purchaser/captcha.py
"""
Text CAPTCHA on the order form: crop the verification image, ask the
vision model what it says, type the answer into the matching input.
"""
from __future__ import annotations

import base64
import re
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from app.core.logging import PURCHASE_LOGGER, get_logger
from app.services.purchaser.browser import find_first, highlight
from app.services.purchaser.errors import CaptchaError, ElementNotFound

logger = get_logger(f"{PURCHASE_LOGGER}.captcha")

IMAGE_SELECTORS = [
    "img[data-v-6aff2c22]",
    ".verification-image",
    "img[src*='captcha']",
    "img[src*='verification']",
    "img[class*='captcha']",
    "img[class*='verification']",
    "div.captcha-container img",
    "div[class*='captcha'] img",
]

INPUT_SELECTORS = [
    "input[placeholder*='verification' i]",
    "input[placeholder*='captcha' i]",
    "input[name*='captcha' i]",
    "input[class*='verification']",
    "input[class*='captcha']",
    "input[aria-label*='verification' i]",
    "input[aria-label*='captcha' i]",
    "div:nth-of-type(10) input",
]

SYSTEM_PROMPT = (
    "You are a CAPTCHA solving assistant. Your only job is to identify the text "
    "in verification images. Return ONLY the characters, with no additional "
    "text or explanations."
)

PROMPTS = [
    "Return ONLY the characters you see in this verification image. "
    "Do not include any explanations or extra text. Just the CAPTCHA text.",
    "What letters and numbers do you see in the verification image? "
    "Return ONLY the characters, nothing else.",
    "Identify the CAPTCHA characters in the image. "
    "Provide ONLY the characters with no additional text.",
]

# chatty lead-ins the model sometimes adds despite the prompt
_PREFIXES = [
    "the text in the image is",
    "the text in the red rectangle is",
    "the text is",
    "the captcha is",
    "the code is",
    "the verification code is",
    "the text reads",
    "i see",
    "it says",
]

MIN_LEN, MAX_LEN = 4, 8
IMAGE_WAIT_MS = 10000


def clean_captcha_text(raw: str) -> str:
    text = (raw or "").strip()
    lowered = text.lower()
    for prefix in _PREFIXES:
        if lowered.startswith(prefix):
            text = text[len(prefix):].strip()
            lowered = text.lower()
    return re.sub(r"[^A-Za-z0-9]", "", text)


def is_plausible(text: str) -> bool:
    return MIN_LEN <= len(text) <= MAX_LEN


def _content_text(reply: Any) -> str:
    content = getattr(reply, "content", reply)
    if isinstance(content, list):  # multi-part message
        return " ".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content)
    return str(content or "")


async def read_captcha(image_png: bytes, llm: Optional[Any] = None) -> str:
    """Ask the vision model for the code, trying each prompt until one answer looks right."""
    if llm is None:
        from app.services.llm_providers import vision_chat
        llm = vision_chat()

    data_url = "data:image/png;base64," + base64.b64encode(image_png).decode("ascii")
    for attempt, prompt in enumerate(PROMPTS, start=1):
        messages = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=[
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": data_url}},
            ]),
        ]
        try:
            reply = await llm.ainvoke(messages)
        except Exception as e:
            logger.warning("Vision request %d failed: %s", attempt, e)
            continue

        raw = _content_text(reply)
        text = clean_captcha_text(raw)
        if is_plausible(text):
            logger.info("Verification text read on attempt %d", attempt)
            return text
        logger.info("Attempt %d gave unusable text %r, retrying", attempt, raw)

    raise CaptchaError("Failed to extract valid verification text after multiple attempts")


async def _captcha_input(page: Page, image):
    found = await find_first(page, INPUT_SELECTORS)
    if found is not None:
        return found
    # last resort: a text input sharing a nearby container with the image
    near = image.locator("xpath=ancestor::*[position()<=5]//input[@type='text']")
    for i in range(min(await near.count(), 5)):
        cand = near.nth(i)
        if await cand.is_visible():
            return cand
    return None


async def solve_captcha(page: Page, llm: Optional[Any] = None) -> str:
    try:
        await page.wait_for_selector(", ".join(IMAGE_SELECTORS[:6]), state="visible",
                                     timeout=IMAGE_WAIT_MS)
    except PlaywrightError:
        logger.info("Verification image slow to appear, trying all selectors")

    image = await find_first(page, IMAGE_SELECTORS)
    if image is None:
        raise ElementNotFound("verification image", IMAGE_SELECTORS)

    png = await image.screenshot(type="png")
    await highlight(image, "red")
    code = await read_captcha(png, llm=llm)

    target = await _captcha_input(page, image)
    if target is None:
        raise ElementNotFound("verification code input", INPUT_SELECTORS)
    await target.click()
    await target.fill(code)
    logger.info("Entered verification code")
    return code
