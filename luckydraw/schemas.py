from __future__ import annotations
from typing import Any
from pydantic import BaseModel, field_validator
from typing_extensions import Literal

Rate = str | float | int

class Prize(BaseModel):
    name: str
    rate: Rate = "0"

class DrawRecord(BaseModel):
    # field names follow the JSON returned by /api/query-history
    time: str = ""
    phone: str = ""
    prize: str = ""
    expire: str = ""
    claimed: str = ""

    @field_validator("time", "phone", "prize", "expire", "claimed", mode="before")
    @classmethod
    def _blank(cls, v: Any) -> str:
        return "" if v is None else str(v)

class CheckResult(BaseModel):
    exists: bool
    time: str | None = None
    prize: str | None = None

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)

def _as_text(v: Any) -> str | None:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float, str)):
        return str(v)
    raise ValueError("expected a string")

class PhoneRequest(BaseModel):
    phone: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def _phone(cls, v: Any) -> str | None:
        return _as_text(v)

class RecordRequest(PhoneRequest):
    prize: str | None = None

    @field_validator("prize", mode="before")
    @classmethod
    def _prize(cls, v: Any) -> str | None:
        return _as_text(v)

class DrawOutcome(BaseModel):
    status: Literal["drawn", "alreadyDrawn"]
    time: str
    prize: str
    expire: str | None = None

    def payload(self) -> dict:
        return self.model_dump(exclude_none=True)
