"""Per-target reservation state machine: wait for the open instant, then claim.

WAITING:    sleep half the remaining (corrected) time, re-evaluate
ATTEMPTING: submit claim, consult ClaimPolicy, back off or finish
terminal:   SUCCEEDED / PERMANENTLY_FAILED / ABORTED
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

from parkreserve.errors import InvalidTransitionError, TransportError
from parkreserve.models import ClaimResult, ClaimToken, JobOutcome, JobState, Target
from parkreserve.policy import ActionKind, ClaimPolicy

logger = logging.getLogger(__name__)


class ClaimGateway(Protocol):
    async def submit_claim(self, csrf: str, target_id: int, token: str) -> ClaimResult: ...


@dataclass(frozen=True)
class RunContext:
    """Everything engines share. Built once before any job starts."""

    gateway: ClaimGateway
    csrf: str
    clock_offset: float = 0.0  # seconds, trusted - local
    policy: ClaimPolicy = field(default_factory=ClaimPolicy)
    local_time: Callable[[], float] = time.time
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def corrected_now_ms(self) -> int:
        return int((self.local_time() + self.clock_offset) * 1000)


class AttemptEngine:
    """Drives one (target, ticket) job to a terminal state."""

    def __init__(self, ctx: RunContext, target: Target, token: ClaimToken) -> None:
        self.ctx = ctx
        self.target = target
        self.token = token
        self.state = JobState.WAITING
        self.attempts = 0
        self._last: ClaimResult | None = None

    @property
    def tag(self) -> str:
        return f"{self.target.label} @ {self.token.label}"

    def _transition(self, new: JobState) -> None:
        if self.state.terminal:
            raise InvalidTransitionError(
                f"{self.tag}: cannot move from {self.state.value} to {new.value}"
            )
        logger.debug("%s: %s -> %s", self.tag, self.state.value, new.value)
        self.state = new

    async def run(self) -> JobOutcome:
        start = time.monotonic()
        await self._wait_for_open()
        self._transition(JobState.ATTEMPTING)
        final, message = await self._attempt_loop()
        self._transition(final)

        elapsed = time.monotonic() - start
        return JobOutcome(
            target=self.target,
            token=self.token,
            state=final,
            attempts=self.attempts,
            elapsed_seconds=elapsed,
            code=self._last.code if self._last else None,
            message=message,
        )

    async def _wait_for_open(self) -> None:
        open_ms = self.target.open_time_ms
        while True:
            now_ms = self.ctx.corrected_now_ms()
            delta = open_ms - now_ms
            if delta <= 0:
                return
            wait_ms = delta // 2
            # sub-millisecond remainder: spin quietly until the open instant
            if wait_ms > 0:
                logger.info(
                    "%s - waiting for open at %s (now %s, offset %+.0fms, sleeping %.3fs)",
                    self.tag,
                    self.target.open_time.isoformat(),
                    datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).isoformat(),
                    self.ctx.clock_offset * 1000,
                    wait_ms / 1000,
                )
            await self.ctx.sleep(wait_ms / 1000)

    def _cap_reached(self) -> bool:
        cap = self.ctx.policy.max_attempts
        if cap is not None and self.attempts >= cap:
            logger.error("%s - attempt cap (%d) reached, giving up", self.tag, self.attempts)
            return True
        return False

    async def _attempt_loop(self) -> tuple[JobState, str]:
        policy = self.ctx.policy
        while True:
            self.attempts += 1
            try:
                result = await self.ctx.gateway.submit_claim(
                    self.ctx.csrf, self.target.id, self.token.token
                )
            except TransportError as e:
                logger.error("%s - claim got no answer: %s", self.tag, e)
                if self._cap_reached():
                    return JobState.PERMANENTLY_FAILED, "attempt cap reached"
                await asyncio.sleep(0)  # yield only, no backoff
                continue

            self._last = result
            action = policy.decide(result.code)

            if action.kind is ActionKind.SUCCEED:
                logger.info("%s - reserved! (%s)", self.tag, result.message)
                return JobState.SUCCEEDED, result.message or action.reason
            if action.kind is ActionKind.RETRY:
                if self._cap_reached():
                    return JobState.PERMANENTLY_FAILED, "attempt cap reached"
                logger.warning(
                    "%s - %s, retrying in %.1fs (%s)",
                    self.tag,
                    action.reason,
                    action.backoff_seconds,
                    result.message,
                )
                await self.ctx.sleep(action.backoff_seconds)
                continue
            if action.kind is ActionKind.FAIL:
                logger.error("%s - %s, ending job (%s)", self.tag, action.reason, result.message)
                return JobState.PERMANENTLY_FAILED, action.reason
            logger.error(
                "%s - %s, aborting job (code=%d, %s)",
                self.tag,
                action.reason,
                result.code,
                result.message,
            )
            return JobState.ABORTED, action.reason
