"""Clock offset estimation against trusted time sources.

The offset is measured once at startup and then frozen into the run context:
every engine computes corrected now as ``local_now() + offset``.

Sources are tried in order and the first one that answers wins. There are no
retries here; if nothing answers the caller runs on the uncorrected local
clock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol, Sequence

import ntplib

logger = logging.getLogger(__name__)


class TimeSource(Protocol):
    name: str

    async def query_trusted_time(self) -> float:
        """Return the trusted time (epoch seconds) at the midpoint of the exchange."""
        ...


class NtpTimeSource:
    """SNTP query via ntplib. BLOCKING call, run in a worker thread."""

    def __init__(self, host: str, timeout: float = 2.0) -> None:
        self.host = host
        self.name = f"ntp:{host}"
        self._timeout = timeout

    def _request(self) -> float:
        resp = ntplib.NTPClient().request(self.host, version=3, timeout=self._timeout)
        # resp.offset is already (server - local); project it onto the local midpoint
        return (resp.orig_time + resp.dest_time) / 2 + resp.offset

    async def query_trusted_time(self) -> float:
        return await asyncio.to_thread(self._request)


class ClockOffsetEstimator:
    """Computes ``trusted_time - local_time`` in seconds."""

    def __init__(
        self,
        sources: Sequence[TimeSource],
        local_time=time.time,
    ) -> None:
        self.sources = list(sources)
        self._local_time = local_time

    async def estimate(self) -> tuple[float, bool]:
        """Return (offset_seconds, ok). ok=False means offset is 0.0 and unverified."""
        for source in self.sources:
            t1 = self._local_time()
            try:
                trusted = await source.query_trusted_time()
            except Exception as e:
                logger.debug("Time source %s failed: %s", source.name, e)
                continue
            t2 = self._local_time()
            offset = trusted - (t1 + t2) / 2
            logger.info("Clock offset: %+.1fms (via %s)", offset * 1000, source.name)
            return offset, True

        logger.warning("No time source reachable, running on uncorrected local clock")
        return 0.0, False


def ntp_sources(hosts: Sequence[str]) -> list[NtpTimeSource]:
    return [NtpTimeSource(h) for h in hosts]
