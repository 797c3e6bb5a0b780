# app/services/llm_providers.py
from typing import Optional
from app.core.config import settings
from langchain_openai import ChatOpenAI


def openai_chat(model: Optional[str] = None, temperature: float = 0.0,
                max_tokens: Optional[int] = None):
    if not settings.has_vision_key:
        raise RuntimeError("OPENAI_API_KEY not set")

    mdl = model or settings.CAPTCHA_MODEL
    is_o_series = mdl.strip().lower().startswith("o")  # "o4-mini", "o3", ...

    kwargs = {"model": mdl, "api_key": settings.OPENAI_API_KEY}
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    # o-series models only accept the default temperature
    kwargs["temperature"] = 1 if is_o_series else temperature
    return ChatOpenAI(**kwargs)


def vision_chat():
    # short deterministic answers: a CAPTCHA is 4-8 characters
    return openai_chat(settings.CAPTCHA_MODEL, temperature=0.0, max_tokens=30)
