"""Runs one AttemptEngine per (target, ticket) pair and waits for all of them."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from parkreserve.engine import AttemptEngine, RunContext
from parkreserve.models import ClaimToken, JobOutcome, JobState, Target

logger = logging.getLogger(__name__)


class JobOrchestrator:
    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def _engines(self, pairs: Iterable[tuple[Target, ClaimToken]]) -> list[AttemptEngine]:
        seen: set[tuple[int, str]] = set()
        engines = []
        for target, token in pairs:
            key = (target.id, token.token)
            if key in seen:
                logger.warning("Duplicate job %s @ %s skipped", target.label, token.label)
                continue
            seen.add(key)
            engines.append(AttemptEngine(self.ctx, target, token))
        return engines

    async def run_all(self, pairs: Iterable[tuple[Target, ClaimToken]]) -> list[JobOutcome]:
        """Block until every job is terminal. One job's crash never cancels another."""
        engines = self._engines(pairs)
        logger.info("Starting %d reservation job(s)", len(engines))

        results = await asyncio.gather(
            *(engine.run() for engine in engines),
            return_exceptions=True,
        )

        outcomes: list[JobOutcome] = []
        for engine, result in zip(engines, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("%s - job crashed: %r", engine.tag, result)
                outcomes.append(
                    JobOutcome(
                        target=engine.target,
                        token=engine.token,
                        state=JobState.ABORTED,
                        attempts=engine.attempts,
                        message=f"crashed: {result}",
                    )
                )
            else:
                outcomes.append(result)

        logger.info("All jobs finished.")
        return outcomes
