"""Claim response code table: what to do after each answer.

``ClaimPolicy.decide`` is pure; the engine does the sleeping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from parkreserve.models import PolicyConfig

SUCCESS = 0
HTTP_TOO_MANY_REQUESTS = 429
HTTP_PRECONDITION_FAILED = 412
OPERATION_TOO_FREQUENT = 76650
REQUEST_TOO_FREQUENT = -702
QUOTA_EXHAUSTED = 76647
CAPACITY_FULL = 75574
NOT_YET_OPEN = 75637


class ActionKind(str, Enum):
    SUCCEED = "succeed"
    RETRY = "retry"
    FAIL = "fail"
    ABORT = "abort"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    reason: str
    backoff_seconds: float = 0.0


def build_table(config: PolicyConfig) -> dict[int, Action]:
    short = config.rate_limited_ms / 1000
    return {
        SUCCESS: Action(ActionKind.SUCCEED, "reserved"),
        HTTP_TOO_MANY_REQUESTS: Action(ActionKind.RETRY, "429 rate limited", short),
        HTTP_PRECONDITION_FAILED: Action(ActionKind.RETRY, "412 precondition failed", short),
        OPERATION_TOO_FREQUENT: Action(ActionKind.RETRY, "operation too frequent", short),
        REQUEST_TOO_FREQUENT: Action(
            ActionKind.RETRY, "request too frequent", config.too_frequent_ms / 1000
        ),
        QUOTA_EXHAUSTED: Action(ActionKind.FAIL, "reservation quota used up for this account"),
        CAPACITY_FULL: Action(
            ActionKind.RETRY, "capacity full, polling for returns", config.capacity_full_seconds
        ),
        NOT_YET_OPEN: Action(ActionKind.ABORT, "not open yet, open time may be wrong"),
    }


class ClaimPolicy:
    """Maps a response code to an Action. Unknown codes abort."""

    def __init__(self, config: PolicyConfig | None = None) -> None:
        self.config = config or PolicyConfig()
        self._table = build_table(self.config)

    @property
    def max_attempts(self) -> int | None:
        return self.config.max_attempts

    def decide(self, code: int) -> Action:
        action = self._table.get(code)
        if action is None:
            return Action(ActionKind.ABORT, f"unknown code {code}, stopping to avoid risk control")
        return action
