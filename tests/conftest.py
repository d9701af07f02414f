"""Shared test fixtures."""

from __future__ import annotations

import pytest

from parkreserve.errors import TransportError
from parkreserve.models import ClaimResult


@pytest.fixture
def sample_info_response():
    """A realistic reserve/info API response."""
    return {
        "code": 0,
        "message": "0",
        "ttl": 1,
        "data": {
            "reserve_list": {
                "20240712": [
                    {
                        "reserve_id": 6016,
                        "act_title": "Stage A meet & greet",
                        "reserve_begin_time": 1720749600,
                        "reserve_end_time": 1720753200,
                    },
                    {
                        "reserve_id": 6017,
                        "act_title": "Booth B photo slot",
                        "reserve_begin_time": 1720753200,
                    },
                ],
                "20240713": [
                    {
                        "reserve_id": 6101,
                        "act_title": "",
                        "reserve_begin_time": 1720836000,
                    },
                ],
            },
            "user_ticket_info": [
                {
                    "ticket": "15111332527932",
                    "sku_name": "Standard pass",
                    "screen_name": "2024-07-12",
                },
                {
                    "ticket": "15111332527999",
                    "sku_name": "VIP pass",
                    "screen_name": "2024-07-13",
                },
            ],
        },
    }


class FakeClock:
    """Deterministic wall clock. sleep() advances time and records the request.

    Like a real timer, a zero-length sleep still lets a millisecond pass.
    """

    def __init__(self, now: float) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.001)


class ScriptedGateway:
    """Replays a list of ClaimResults / codes / exceptions, one per claim."""

    def __init__(self, script, clock: FakeClock | None = None) -> None:
        self.script = list(script)
        self.clock = clock
        self.calls: list[tuple[str, int, str]] = []
        self.call_times: list[float] = []

    async def submit_claim(self, csrf: str, target_id: int, token: str) -> ClaimResult:
        self.calls.append((csrf, target_id, token))
        if self.clock is not None:
            self.call_times.append(self.clock.now)
        if not self.script:
            raise AssertionError("claim issued after the script ran out")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        if isinstance(step, int):
            return ClaimResult(code=step, message=f"code {step}")
        return step


@pytest.fixture
def transport_error():
    return TransportError("ConnectError: connection reset")
