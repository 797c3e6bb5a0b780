# app/schemas/purchase.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# YYYY-M-D .. YYYY-MM-DD
DATE_PATTERN = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PurchaseParams(BaseModel):
    name: str
    quantity: int = 1
    date: str


class PurchaseRequest(BaseModel):
    name: str = Field(..., description="Exact product title, e.g. 'Universal Express Pass 4: Fun Variety'")
    quantity: Any = Field(1, description="Ticket count; defaults to 1")
    date: str = Field(..., description="Visit date, YYYY-M-D or YYYY-MM-DD")

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        if v is None:
            raise ValueError("Missing required parameter: name")
        if not isinstance(v, str):
            raise ValueError("name must be a string")
        v = v.strip()
        if not v:
            raise ValueError("Missing required parameter: name")
        return v

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: Any) -> int:
        # falsy or non-numeric input falls back to a single ticket
        if v is None or isinstance(v, bool) or v == "":
            return 1
        try:
            n = float(v)
        except (TypeError, ValueError):
            return 1
        if n != n or n == 0:  # NaN or zero
            return 1
        if n < 1 or not n.is_integer():
            raise ValueError("Quantity must be a positive number.")
        return int(n)

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v: Any) -> str:
        if v is None:
            raise ValueError("Missing required parameter: date")
        if not isinstance(v, str) or not DATE_PATTERN.match(v.strip()):
            raise ValueError("Date must be in format YYYY-MM-DD.")
        return v.strip()

    def to_params(self) -> PurchaseParams:
        return PurchaseParams(name=self.name, quantity=self.quantity, date=self.date)


# ----- responses -----
class PurchaseAccepted(CamelModel):
    success: bool = True
    message: str = "Purchase job initiated"
    job_id: str
    status: str


class JobOut(CamelModel):
    id: str
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    params: PurchaseParams
    logs: List[str]
    error: Optional[str] = None
    result: Any = None


class JobSummary(CamelModel):
    id: str
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    params: PurchaseParams
    has_error: bool


class JobEnvelope(CamelModel):
    success: bool = True
    job: JobOut


class JobList(CamelModel):
    success: bool = True
    count: int
    jobs: List[JobSummary]


class Msg(CamelModel):
    success: bool = True
    message: str


class CleanupOut(Msg):
    removed: int


class HealthOut(BaseModel):
    status: str
    uptime: float
    timestamp: datetime
