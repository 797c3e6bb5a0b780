# app/services/purchaser/dates.py
from __future__ import annotations

import calendar
import re
from datetime import date
from typing import Optional, Tuple

_MONTHS = {name.lower(): i for i, name in enumerate(calendar.month_name) if name}
_MONTHS.update({name.lower(): i for i, name in enumerate(calendar.month_abbr) if name})


def parse_visit_date(value: str) -> date:
    """'2025-5-31' / '2025-05-31' -> date. Raises ValueError on impossible dates."""
    m = re.fullmatch(r"\s*(\d{4})-(\d{1,2})-(\d{1,2})\s*", value)
    if not m:
        raise ValueError(f"Unrecognised visit date: {value!r}")
    year, month, day = (int(g) for g in m.groups())
    return date(year, month, day)


def months_between(shown: Tuple[int, int], target: Tuple[int, int]) -> int:
    """Clicks on the next-month arrow needed to go from ``shown`` to ``target`` (year, month)."""
    return (target[0] - shown[0]) * 12 + (target[1] - shown[1])


def parse_calendar_heading(text: str) -> Optional[Tuple[int, int]]:
    """
    Read the (year, month) a calendar header shows. Handles
    "May 2025", "2025 May", "2025/5", "2025-05", "2025年5月".
    """
    if not text:
        return None
    text = " ".join(text.split())

    m = re.search(r"(\d{4})\s*[/\-.年]\s*(\d{1,2})", text)
    if m and 1 <= int(m.group(2)) <= 12:
        return int(m.group(1)), int(m.group(2))

    year = re.search(r"\b(\d{4})\b", text)
    if year:
        for word in re.findall(r"[A-Za-z]+", text):
            month = _MONTHS.get(word.lower())
            if month:
                return int(year.group(1)), month
    return None
