"""Tests for the per-target wait/attempt state machine."""

import logging
from datetime import datetime, timezone

import pytest

from conftest import FakeClock, ScriptedGateway
from parkreserve.engine import AttemptEngine, RunContext
from parkreserve.errors import InvalidTransitionError
from parkreserve.models import ClaimResult, ClaimToken, JobState, PolicyConfig, Target
from parkreserve.policy import ClaimPolicy

OPEN_TS = 1720749600


def _target(open_ts: int = OPEN_TS) -> Target:
    return Target(
        id=6016,
        label="Stage A meet & greet",
        open_time=datetime.fromtimestamp(open_ts, tz=timezone.utc),
    )


def _token() -> ClaimToken:
    return ClaimToken(token="15111332527932", label="2024-07-12")


def _engine(script, now: float, offset: float = 0.0, policy: PolicyConfig | None = None):
    clock = FakeClock(now)
    gateway = ScriptedGateway(script, clock)
    ctx = RunContext(
        gateway=gateway,
        csrf="csrf123",
        clock_offset=offset,
        policy=ClaimPolicy(policy),
        local_time=clock.time,
        sleep=clock.sleep,
    )
    return AttemptEngine(ctx, _target(), _token()), gateway, clock


@pytest.mark.asyncio
class TestWaiting:
    async def test_past_open_time_attempts_immediately(self):
        engine, gateway, clock = _engine([0], now=OPEN_TS + 60)

        outcome = await engine.run()

        assert outcome.state is JobState.SUCCEEDED
        assert clock.sleeps == []
        assert gateway.calls == [("csrf123", 6016, "15111332527932")]

    async def test_future_open_time_never_claims_early(self):
        engine, gateway, clock = _engine([0], now=OPEN_TS - 10)

        await engine.run()

        assert len(gateway.calls) == 1
        assert gateway.call_times[0] >= OPEN_TS
        # first wait is half the distance
        assert clock.sleeps[0] == pytest.approx(5.0)

    async def test_waits_are_non_increasing(self):
        engine, _, clock = _engine([0], now=OPEN_TS - 3600)

        await engine.run()

        assert len(clock.sleeps) > 10
        assert all(b <= a for a, b in zip(clock.sleeps, clock.sleeps[1:]))

    async def test_uses_corrected_time(self):
        # local clock 4s behind the trusted clock: only 6s really remain
        engine, gateway, clock = _engine([0], now=OPEN_TS - 10, offset=4.0)

        await engine.run()

        assert clock.sleeps[0] == pytest.approx(3.0)
        assert gateway.call_times[0] + 4.0 >= OPEN_TS
        assert gateway.call_times[0] < OPEN_TS

    async def test_open_exactly_now_does_not_wait(self):
        engine, _, clock = _engine([0], now=OPEN_TS)

        await engine.run()

        assert clock.sleeps == []


@pytest.mark.asyncio
class TestAttempting:
    async def test_success_is_final(self):
        engine, gateway, _ = _engine([ClaimResult(code=0, message="ok")], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.SUCCEEDED
        assert outcome.attempts == 1
        assert outcome.message == "ok"
        with pytest.raises(InvalidTransitionError):
            await engine.run()
        assert len(gateway.calls) == 1

    async def test_rate_limits_then_quota_exhausted(self):
        engine, gateway, clock = _engine([429, 412, 76647], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.PERMANENTLY_FAILED
        assert outcome.attempts == 3
        assert outcome.code == 76647
        assert len(gateway.calls) == 3
        assert clock.sleeps == [pytest.approx(0.3), pytest.approx(0.3)]

    async def test_unknown_code_aborts_without_backoff(self):
        engine, gateway, clock = _engine([99999], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.ABORTED
        assert outcome.code == 99999
        assert len(gateway.calls) == 1
        assert clock.sleeps == []

    async def test_not_yet_open_aborts(self):
        engine, gateway, _ = _engine([75637], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.ABORTED
        assert len(gateway.calls) == 1

    async def test_backoff_per_code(self):
        engine, _, clock = _engine([76650, -702, 75574, 0], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.SUCCEEDED
        assert clock.sleeps == [pytest.approx(0.3), pytest.approx(0.5), pytest.approx(30.0)]

    async def test_retries_never_return_to_waiting(self):
        # Capacity-full backoff lands well past the open time; no halving waits follow
        engine, _, clock = _engine([75574, 75574, 0], now=OPEN_TS - 2)

        await engine.run()

        assert clock.sleeps[-2:] == [pytest.approx(30.0), pytest.approx(30.0)]
        assert engine.state is JobState.SUCCEEDED

    async def test_transport_error_retries_immediately(self, transport_error):
        engine, gateway, clock = _engine([transport_error, transport_error, 0], now=OPEN_TS + 1)

        outcome = await engine.run()

        assert outcome.state is JobState.SUCCEEDED
        assert outcome.attempts == 3
        assert len(gateway.calls) == 3
        assert clock.sleeps == []

    async def test_configured_backoffs(self):
        policy = PolicyConfig(rate_limited_ms=50, too_frequent_ms=70, capacity_full_seconds=2)
        engine, _, clock = _engine([429, -702, 75574, 0], now=OPEN_TS + 1, policy=policy)

        await engine.run()

        assert clock.sleeps == [pytest.approx(0.05), pytest.approx(0.07), pytest.approx(2.0)]

    async def test_attempt_cap(self):
        engine, gateway, clock = _engine(
            [429, 429, 429], now=OPEN_TS + 1, policy=PolicyConfig(max_attempts=2)
        )

        outcome = await engine.run()

        assert outcome.state is JobState.PERMANENTLY_FAILED
        assert outcome.message == "attempt cap reached"
        assert len(gateway.calls) == 2
        assert clock.sleeps == [pytest.approx(0.3)]

    async def test_attempt_cap_skips_final_long_backoff(self):
        engine, gateway, clock = _engine(
            [75574], now=OPEN_TS + 1, policy=PolicyConfig(max_attempts=1)
        )

        outcome = await engine.run()

        assert outcome.state is JobState.PERMANENTLY_FAILED
        assert outcome.code == 75574
        assert len(gateway.calls) == 1
        assert clock.sleeps == []

    async def test_attempt_cap_counts_transport_errors(self, transport_error):
        engine, gateway, clock = _engine(
            [transport_error, transport_error], now=OPEN_TS + 1, policy=PolicyConfig(max_attempts=2)
        )

        outcome = await engine.run()

        assert outcome.state is JobState.PERMANENTLY_FAILED
        assert len(gateway.calls) == 2
        assert clock.sleeps == []


@pytest.mark.asyncio
class TestWaitLogging:
    async def test_sub_millisecond_spin_is_quiet(self, caplog):
        engine, _, clock = _engine([0], now=OPEN_TS - 0.0005)

        with caplog.at_level(logging.INFO, logger="parkreserve.engine"):
            await engine.run()

        assert clock.sleeps == [0.0]
        assert not [r for r in caplog.records if "waiting for open" in r.getMessage()]

    async def test_real_waits_are_logged(self, caplog):
        engine, _, _ = _engine([0], now=OPEN_TS - 10)

        with caplog.at_level(logging.INFO, logger="parkreserve.engine"):
            await engine.run()

        waits = [r for r in caplog.records if "waiting for open" in r.getMessage()]
        assert waits
        assert all("sleeping 0.000s" not in r.getMessage() for r in waits)
