"""Scan validation protocol for one member session.

``IDLE -> SCANNING -> {CODE_REJECTED | LOCATION_PENDING}
-> {LOCATION_REJECTED | ACCEPTED} -> IDLE``

Only one scan runs at a time; a scan that arrives while another is in flight
is dropped and reported as ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from carte.domain.errors import LocationUnavailable
from carte.domain.geo import service as geo
from carte.domain.geo.models import ClubLocation, GeoResult
from carte.domain.scan.models import ScanOutcome, ScanState
from carte.domain.visits.ledger import VisitLedger
from carte.obs import metrics as obs_metrics
from carte.settings import settings

logger = logging.getLogger(__name__)


def is_valid_payload(
    payload: str,
    markers: Optional[Iterable[str]] = None,
    exact_codes: Optional[Iterable[str]] = None,
) -> bool:
    if not payload:
        return False
    markers = settings.scan_markers if markers is None else markers
    exact_codes = settings.scan_exact_codes if exact_codes is None else exact_codes
    return payload in exact_codes or any(marker in payload for marker in markers)


class ScanSession:
    def __init__(
        self,
        ledger: VisitLedger,
        member_id: str,
        club_id: str,
        *,
        location_timeout: Optional[float] = None,
    ) -> None:
        self._ledger = ledger
        self.member_id = member_id
        self.club_id = club_id
        self._location_timeout = location_timeout
        self.state = ScanState.IDLE
        self._location_task: Optional[asyncio.Task[GeoResult]] = None
        self._cancel_requested = False

    @property
    def busy(self) -> bool:
        return self.state is not ScanState.IDLE

    def cancel(self) -> bool:
        """Abandon a pending location wait. Returns False when nothing was pending."""
        task = self._location_task
        if self.state is not ScanState.LOCATION_PENDING or task is None or task.done():
            return False
        self._cancel_requested = True
        task.cancel()
        return True

    async def scan(self, payload: str, provider: geo.PositionProvider, location: ClubLocation) -> ScanOutcome:
        if self.busy:
            outcome = ScanOutcome(accepted=False, ignored=True, rejection_reason="scan_in_progress")
            obs_metrics.inc_scan_outcome(outcome.outcome)
            return outcome
        self.state = ScanState.SCANNING
        try:
            outcome = await self._run(payload, provider, location)
        finally:
            self.state = ScanState.IDLE
            self._location_task = None
            self._cancel_requested = False
        obs_metrics.inc_scan_outcome(outcome.outcome)
        logger.info(
            "Scan finished",
            extra={"member_id": self.member_id, "outcome": outcome.outcome, "distance_m": outcome.distance_m},
        )
        return outcome

    async def _run(self, payload: str, provider: geo.PositionProvider, location: ClubLocation) -> ScanOutcome:
        if not is_valid_payload(payload):
            self.state = ScanState.CODE_REJECTED
            return ScanOutcome(accepted=False, rejection_reason="invalid_code")

        self.state = ScanState.LOCATION_PENDING
        self._location_task = asyncio.ensure_future(
            geo.locate_and_validate(provider, location, timeout=self._location_timeout)
        )
        try:
            result = await self._location_task
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            return ScanOutcome(accepted=False, rejection_reason="cancelled")
        except LocationUnavailable as exc:
            self.state = ScanState.LOCATION_REJECTED
            return ScanOutcome(accepted=False, rejection_reason=exc.reason, cause=exc.cause)

        obs_metrics.observe_geofence_distance(result.distance_m)
        if not result.accepted:
            self.state = ScanState.LOCATION_REJECTED
            return ScanOutcome(accepted=False, rejection_reason="not_at_club", distance_m=result.distance_m)

        self.state = ScanState.ACCEPTED
        append = asyncio.ensure_future(self._ledger.append(self.member_id, self.club_id))
        try:
            appended = await asyncio.shield(append)
        except asyncio.CancelledError:
            # The visit still lands before the session goes idle.
            await append
            raise
        return ScanOutcome(
            accepted=True,
            member=appended.member,
            reward_granted=appended.reward_granted,
            distance_m=result.distance_m,
            confirmed=appended.confirmed,
            warning=appended.warning,
            earned_reward=appended.earned_reward,
        )
