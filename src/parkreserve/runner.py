"""Startup sequence and job launch.

1. Load cookie and derive csrf            (fatal on failure)
2. Estimate clock offset, in background  (non-fatal, 0 on failure)
3. Fetch reservation info snapshot        (fatal on failure)
4. Build registry, resolve configured jobs into (target, ticket) pairs
5. Run every job to a terminal state
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Mapping

from parkreserve.api import ParkApiClient
from parkreserve.auth import SessionManager, csrf_from_cookie
from parkreserve.clock import ClockOffsetEstimator, ntp_sources
from parkreserve.engine import RunContext
from parkreserve.errors import TargetNotFoundError
from parkreserve.models import ClaimToken, JobOutcome, RunConfig, Target
from parkreserve.orchestrator import JobOrchestrator
from parkreserve.policy import ClaimPolicy
from parkreserve.registry import TargetRegistry
from parkreserve.sink import open_sink

logger = logging.getLogger(__name__)


def build_pairs(
    registry: TargetRegistry, jobs: Mapping[int, str]
) -> list[tuple[Target, ClaimToken]]:
    """Resolve configured target id -> ticket jobs. Unknown targets are skipped."""
    pairs = []
    for target_id, ticket in jobs.items():
        try:
            target = registry.target(target_id)
        except TargetNotFoundError as e:
            logger.error("%s, job skipped", e)
            continue
        token = registry.claim_token(ticket)
        logger.info(
            "Job: %s (id=%d, opens %s) with ticket %s [%s]",
            target.label,
            target.id,
            target.open_time.isoformat(),
            token.token,
            token.label,
        )
        pairs.append((target, token))
    return pairs


class ReservationRunner:
    """Wires config, session, gateway, clock and orchestrator together."""

    def __init__(self, session: SessionManager | None = None) -> None:
        self.session = session or SessionManager()

    def _estimator(self, config: RunConfig, client: ParkApiClient) -> ClockOffsetEstimator:
        # NTP first, the API's own Date header as last resort
        return ClockOffsetEstimator([*ntp_sources(config.time_sources), client])

    async def measure_clock(self, config: RunConfig) -> tuple[float, bool]:
        cookie = self.session.load_cookie(config.cookie)
        async with ParkApiClient(cookie, config.buvid) as client:
            return await self._estimator(config, client).estimate()

    async def fetch_registry(self, config: RunConfig) -> TargetRegistry:
        cookie = self.session.load_cookie(config.cookie)
        csrf = csrf_from_cookie(cookie)
        async with ParkApiClient(cookie, config.buvid) as client:
            return TargetRegistry(await client.fetch_snapshot(csrf, config.reserve_dates))

    async def execute(self, config: RunConfig) -> list[JobOutcome]:
        cookie = self.session.load_cookie(config.cookie)
        csrf = csrf_from_cookie(cookie)

        with open_sink(config.response_log) as sink:
            async with ParkApiClient(cookie, config.buvid, sink=sink) as client:
                clock_task = asyncio.create_task(self._estimator(config, client).estimate())
                try:
                    snapshot = await client.fetch_snapshot(csrf, config.reserve_dates)
                except BaseException:
                    clock_task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await clock_task
                    raise
                offset, _ = await clock_task

                registry = TargetRegistry(snapshot)
                for ticket in registry.tickets:
                    logger.info(
                        "Available ticket %s: %s %s",
                        ticket.token,
                        registry.sku_name(ticket.token),
                        ticket.label,
                    )

                pairs = build_pairs(registry, config.jobs)
                if not pairs:
                    logger.warning("No configured job matched a reservation target")
                    return []

                ctx = RunContext(
                    gateway=client,
                    csrf=csrf,
                    clock_offset=offset,
                    policy=ClaimPolicy(config.policy),
                )
                return await JobOrchestrator(ctx).run_all(pairs)
