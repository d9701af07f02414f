"""Target registry built once from the reservation info snapshot."""

from __future__ import annotations

import logging
from datetime import datetime

from parkreserve.errors import TargetNotFoundError
from parkreserve.models import ClaimToken, ReservationSnapshot, Target

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"


class TargetRegistry:
    """Read-only view of targets and the user's tickets. Never refreshed mid-run."""

    def __init__(self, snapshot: ReservationSnapshot) -> None:
        self._targets: dict[int, Target] = {}
        for items in snapshot.reserve_list.values():
            for item in items:
                self._targets[item.reserve_id] = Target.from_item(item)
        self._tickets: dict[str, ClaimToken] = {
            t.ticket: ClaimToken(token=t.ticket, label=t.screen_name or t.sku_name or UNKNOWN_LABEL)
            for t in snapshot.user_ticket_info
        }
        self._ticket_info = {t.ticket: t for t in snapshot.user_ticket_info}

    @property
    def targets(self) -> list[Target]:
        return sorted(self._targets.values(), key=lambda t: (t.open_time, t.id))

    @property
    def tickets(self) -> list[ClaimToken]:
        return list(self._tickets.values())

    def sku_name(self, token: str) -> str:
        info = self._ticket_info.get(token)
        return info.sku_name if info else ""

    def target(self, target_id: int) -> Target:
        try:
            return self._targets[target_id]
        except KeyError:
            raise TargetNotFoundError(f"No reservation target with id {target_id}") from None

    def resolve_open_time(self, target_id: int) -> datetime:
        return self.target(target_id).open_time

    def label(self, target_id: int) -> str:
        target = self._targets.get(target_id)
        return target.label if target and target.label else UNKNOWN_LABEL

    def claim_token(self, token: str) -> ClaimToken:
        found = self._tickets.get(token)
        if found is None:
            logger.warning("Ticket %s not among available tickets, submitting anyway", token)
            return ClaimToken(token=token)
        return found
