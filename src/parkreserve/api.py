"""Async client for the BW park reservation API using httpx with HTTP/2.

One client (one connection pool, one cookie) is shared by every job.
Only two outcomes leave submit_claim: a ClaimResult, or TransportError when
nothing interpretable came back.
"""

from __future__ import annotations

import logging
from email.utils import parsedate_to_datetime
from typing import Sequence

import httpx
import orjson
from pydantic import ValidationError

from parkreserve.errors import SnapshotError, TransportError
from parkreserve.models import ClaimResult, InfoResponse, ReservationSnapshot
from parkreserve.sink import NullSink, ResponseSink

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5_1 like Mac OS X) "
    "AppleWebKit/618.2.12.10.9 (KHTML, like Gecko) Mobile/21F90 BiliApp/80300100 "
    "os/ios model/iPhone 14 Pro Max mobi_app/iphone build/80300100 osVer/17.5.1 "
    "network/2 channel/AppStore Buvid/{buvid} c_locale/zh-Hans_CN s_locale/zh-Hans_JP "
    "sessionID/11fa54f6 disable_rcmd/0"
)
REFERER = (
    "https://www.bilibili.com/blackboard/bw/2024/bws_event.html"
    "?navhide=1&stahide=1&native.theme=2&night=1#/Order/FieldOrder"
)

INFO_PATH = "/x/activity/bws/online/park/reserve/info"
DO_PATH = "/x/activity/bws/online/park/reserve/do"

# HTTP statuses that carry meaning for the retry table even without a body
_STATUS_AS_CODE = (412, 429)


class ParkApiClient:
    """
    Async HTTP client for the reservation API.

    Use as an async context manager to get connection pooling and keep-alive:

        async with ParkApiClient(cookie="...", buvid="...") as client:
            snapshot = await client.fetch_snapshot(csrf, ["20240712"])
            result = await client.submit_claim(csrf, 6016, "15111332527932")
    """

    BASE_URL = "https://api.bilibili.com"

    def __init__(
        self,
        cookie: str,
        buvid: str = "",
        sink: ResponseSink | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._cookie = cookie
        self._buvid = buvid
        self._sink = sink or NullSink()
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self.name = f"http-date:{httpx.URL(self.BASE_URL).host}"

    async def __aenter__(self) -> ParkApiClient:
        self._client = httpx.AsyncClient(
            http2=True,
            base_url=self.BASE_URL,
            headers=self._base_headers(),
            timeout=httpx.Timeout(self._timeout, connect=5.0),
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()

    def _base_headers(self) -> dict[str, str]:
        return {
            "User-Agent": USER_AGENT.format(buvid=self._buvid),
            "Cookie": self._cookie,
        }

    async def fetch_snapshot(self, csrf: str, reserve_dates: Sequence[str]) -> ReservationSnapshot:
        """GET reserve/info: every target plus the tickets this account holds."""
        assert self._client is not None
        try:
            resp = await self._client.get(
                INFO_PATH,
                params={"csrf": csrf, "reserve_date": ",".join(reserve_dates)},
            )
        except httpx.HTTPError as e:
            raise SnapshotError(f"Reservation info request failed: {e}") from e

        if resp.status_code != 200:
            raise SnapshotError(f"Reservation info returned HTTP {resp.status_code}")

        try:
            parsed = InfoResponse.model_validate(orjson.loads(resp.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise SnapshotError(f"Unreadable reservation info: {e}") from e

        if parsed.code != 0 or parsed.data is None:
            raise SnapshotError(f"Reservation info code {parsed.code}: {parsed.message}")
        return parsed.data

    async def submit_claim(self, csrf: str, target_id: int, token: str) -> ClaimResult:
        """POST reserve/do. A nonzero code is a normal result, not an exception."""
        assert self._client is not None
        try:
            resp = await self._client.post(
                DO_PATH,
                data={"csrf": csrf, "inter_reserve_id": str(target_id), "ticket_no": token},
                headers={"Referer": REFERER},
            )
        except httpx.HTTPError as e:
            self._sink.record({"target_id": target_id, "ticket": token, "error": repr(e)})
            raise TransportError(f"{type(e).__name__}: {e}") from e

        self._sink.record(
            {
                "target_id": target_id,
                "ticket": token,
                "status": resp.status_code,
                "body": resp.text,
            }
        )

        if resp.status_code in _STATUS_AS_CODE:
            return ClaimResult(code=resp.status_code, message=f"HTTP {resp.status_code}")

        try:
            return ClaimResult.model_validate(orjson.loads(resp.content))
        except (orjson.JSONDecodeError, ValidationError) as e:
            raise TransportError(f"HTTP {resp.status_code} with unreadable body") from e

    async def query_trusted_time(self) -> float:
        """Server clock from the Date header of a HEAD request (epoch seconds)."""
        assert self._client is not None
        try:
            resp = await self._client.head("/")
        except httpx.HTTPError as e:
            raise TransportError(f"Time query failed: {e}") from e
        date_header = resp.headers.get("date")
        if not date_header:
            raise TransportError("Server sent no Date header")
        # Date has whole-second resolution; centre the estimate in that second
        return parsedate_to_datetime(date_header).timestamp() + 0.5
