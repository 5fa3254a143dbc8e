"""Explicit per-login member context.

A ``MemberSession`` owns the member's cached record, the club it scans at and
the scan state machine. Sessions live in a ``SessionRegistry`` keyed by the
access token's session id, and their identity is shadowed in the local cache
so a restarted process can rebuild them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from carte.domain.clubs.models import ClubInfo
from carte.domain.errors import MemberNotFound, SessionExpired
from carte.domain.geo.models import ClubLocation
from carte.domain.scan.service import ScanSession
from carte.domain.sync.service import ConsistencyLayer, member_key, session_key
from carte.domain.visits.ledger import VisitLedger
from carte.domain.visits.models import Member
from carte.obs import metrics as obs_metrics
from carte.settings import settings

logger = logging.getLogger(__name__)


class MemberSession:
    def __init__(self, session_id: str, member_id: str, club_id: str, layer: ConsistencyLayer, ledger: VisitLedger) -> None:
        self.session_id = session_id
        self.member_id = member_id
        self.club_id = club_id
        self._layer = layer
        self.member: Optional[Member] = None
        self.club: Optional[ClubInfo] = None
        self.scan = ScanSession(ledger, member_id, club_id, location_timeout=settings.geolocation_timeout_seconds)

    @property
    def location(self) -> ClubLocation:
        if self.club is not None:
            return self.club.location
        return ClubLocation(settings.club_latitude, settings.club_longitude, settings.club_max_distance_m)

    async def hydrate(self) -> Member:
        """Load the cached member first, then reconcile with the remote copy."""
        cached = await self._layer.read_cached(member_key(self.club_id, self.member_id))
        if cached is not None:
            self.member = Member.from_record(cached)
        member = await self._layer.get_member(self.club_id, self.member_id)
        if member is None:
            raise MemberNotFound()
        self.member = member
        self.club = await self._layer.get_club_info(self.club_id)
        await self._layer.write_cached(
            session_key(self.session_id),
            {"member_id": self.member_id, "club_id": self.club_id},
        )
        return member

    async def refresh(self) -> Member:
        member = await self._layer.get_member(self.club_id, self.member_id)
        if member is None:
            raise MemberNotFound()
        self.member = member
        return member

    async def teardown(self) -> None:
        self.scan.cancel()
        self.member = None
        self.club = None
        await self._layer.remove_cached(session_key(self.session_id))


class SessionRegistry:
    def __init__(self, layer: ConsistencyLayer, ledger: VisitLedger) -> None:
        self._layer = layer
        self._ledger = ledger
        self._sessions: Dict[str, MemberSession] = {}
        # One rebuild in flight per session id; later callers await the same task.
        self._rebuilding: Dict[str, asyncio.Future[MemberSession]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, session_id: str, member_id: str, club_id: str) -> MemberSession:
        session = MemberSession(session_id, member_id, club_id, self._layer, self._ledger)
        await session.hydrate()
        async with self._lock:
            self._sessions[session_id] = session
            obs_metrics.set_member_sessions(len(self._sessions))
        return session

    async def get(self, session_id: str, member_id: str) -> MemberSession:
        """Return the live session, rebuilding it from the cache after a restart."""
        async with self._lock:
            session = self._sessions.get(session_id)
            rebuild = None
            if session is None:
                rebuild = self._rebuilding.get(session_id)
                if rebuild is None:
                    rebuild = asyncio.ensure_future(self._rebuild(session_id))
                    self._rebuilding[session_id] = rebuild
        if rebuild is not None:
            session = await asyncio.shield(rebuild)
        if session.member_id != member_id:
            raise SessionExpired()
        return session

    async def _rebuild(self, session_id: str) -> MemberSession:
        try:
            record = await self._layer.read_cached(session_key(session_id))
            if not record:
                raise SessionExpired()
            logger.info("Rebuilding member session from cache", extra={"member_id": record["member_id"]})
            session = MemberSession(session_id, record["member_id"], record["club_id"], self._layer, self._ledger)
            await session.hydrate()
            async with self._lock:
                self._sessions[session_id] = session
                obs_metrics.set_member_sessions(len(self._sessions))
            return session
        finally:
            self._rebuilding.pop(session_id, None)

    async def close(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            obs_metrics.set_member_sessions(len(self._sessions))
        if session is not None:
            await session.teardown()
        else:
            await self._layer.remove_cached(session_key(session_id))

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            obs_metrics.set_member_sessions(0)
        for session in sessions:
            session.scan.cancel()
