"""Pydantic models for config, API payloads and job state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Config Models ---


class PolicyConfig(BaseModel):
    """Backoff tuning for the claim retry table."""

    rate_limited_ms: int = Field(default=300, ge=0)
    too_frequent_ms: int = Field(default=500, ge=0)
    capacity_full_seconds: float = Field(default=30.0, ge=0)
    max_attempts: int | None = Field(default=None, ge=1)  # None = retry forever


class RunConfig(BaseModel):
    """Loaded from YAML config file."""

    cookie: str | None = None
    buvid: str = ""
    reserve_dates: list[str] = ["20240712", "20240713", "20240714"]
    jobs: dict[int, str] = Field(min_length=1)  # target id -> ticket number
    policy: PolicyConfig = PolicyConfig()
    time_sources: list[str] = ["ntp.aliyun.com", "pool.ntp.org"]
    response_log: str | None = "response.txt"

    @field_validator("jobs", mode="before")
    @classmethod
    def _ticket_numbers_as_text(cls, value):
        # unquoted ticket numbers arrive from YAML as ints
        if isinstance(value, dict):
            return {
                k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                for k, v in value.items()
            }
        return value

    @field_validator("reserve_dates", mode="before")
    @classmethod
    def _dates_as_text(cls, value):
        if isinstance(value, list):
            return [str(v) if isinstance(v, int) else v for v in value]
        return value


# --- API Response Models ---


class ReserveItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    reserve_id: int
    act_title: str = ""
    reserve_begin_time: int  # unix seconds


class TicketInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    ticket: str
    sku_name: str = ""
    screen_name: str = ""


class ReservationSnapshot(BaseModel):
    model_config = ConfigDict(extra="allow")

    reserve_list: dict[str, list[ReserveItem]] = {}
    user_ticket_info: list[TicketInfo] = []


class InfoResponse(BaseModel):
    code: int
    message: str = ""
    data: ReservationSnapshot | None = None


class ClaimResult(BaseModel):
    """Structured answer to a claim request. code 0 = success."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str = ""


# --- Domain Models ---


class Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    label: str
    open_time: datetime

    @property
    def open_time_ms(self) -> int:
        return int(self.open_time.timestamp()) * 1000

    @classmethod
    def from_item(cls, item: ReserveItem) -> Target:
        return cls(
            id=item.reserve_id,
            label=item.act_title or "unknown",
            open_time=datetime.fromtimestamp(item.reserve_begin_time, tz=timezone.utc),
        )


class ClaimToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    label: str = "unknown"


class JobState(str, Enum):
    WAITING = "waiting"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    PERMANENTLY_FAILED = "permanently_failed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.PERMANENTLY_FAILED, JobState.ABORTED)


class JobOutcome(BaseModel):
    target: Target
    token: ClaimToken
    state: JobState
    attempts: int = 0
    elapsed_seconds: float = 0.0
    code: int | None = None
    message: str = ""
