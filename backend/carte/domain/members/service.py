"""Member-facing operations: login, scanning and progress reads."""

from __future__ import annotations

import logging
from typing import List
from uuid import uuid4

from carte.domain.clubs.models import RewardCatalogEntry
from carte.domain.errors import ClubNotFound, RemoteUnavailable
from carte.domain.geo.models import ClubLocation
from carte.domain.geo.service import PositionProvider
from carte.domain.levels import service as levels
from carte.domain.levels.models import Progress
from carte.domain.members.models import LoginResult, MemberStats, ScanReport
from carte.domain.members.session import MemberSession, SessionRegistry
from carte.domain.motivation import service as motivation
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits import sockets as visit_sockets
from carte.domain.visits.ledger import VisitLedger
from carte.domain.visits.models import EarnedReward, Member, Visit
from carte.infra import auth
from carte.infra.rate_limit import enforce
from carte.infra.store import new_document_id
from carte.obs import metrics as obs_metrics
from carte.settings import settings

logger = logging.getLogger(__name__)

STATS_RECENT_VISITS = 5


class MemberService:
    def __init__(self, layer: ConsistencyLayer, ledger: VisitLedger, registry: SessionRegistry) -> None:
        self._layer = layer
        self._ledger = ledger
        self._registry = registry

    async def _session(self, principal: auth.AuthenticatedUser) -> MemberSession:
        return await self._registry.get(principal.session_id, principal.id)

    async def login_member(self, name: str, club_id: str) -> LoginResult:
        """Find the member by case-insensitive name in the club, creating them on first login."""
        if await self._layer.get_club_info(club_id) is None:
            obs_metrics.inc_member_login("club_not_found")
            raise ClubNotFound()
        member = await self._layer.find_member_by_name(club_id, name)
        created = member is None
        if member is None:
            member = Member(id=new_document_id(), club_id=club_id, name=" ".join(name.split()))
            try:
                await self._layer.create_member(member)
            except RemoteUnavailable:
                member.pending = True
        principal = auth.AuthenticatedUser(
            id=member.id,
            club_id=club_id,
            role=auth.ROLE_MEMBER,
            session_id=uuid4().hex,
            name=member.name,
        )
        session = await self._registry.open(principal.session_id, member.id, club_id)
        obs_metrics.inc_member_login("created" if created else "existing")
        logger.info("Member signed in", extra={"member_id": member.id, "created": created})
        return LoginResult(
            member=session.member or member,
            access_token=auth.issue_token(principal),
            session_id=principal.session_id,
            created=created,
        )

    async def logout(self, principal: auth.AuthenticatedUser) -> None:
        await auth.revoke_session(principal.session_id, settings.access_ttl_minutes * 60)
        await self._registry.close(principal.session_id)

    async def record_scan(self, principal: auth.AuthenticatedUser, payload: str, provider: PositionProvider) -> ScanReport:
        await enforce("scan", principal.id, limit=settings.scan_rate_limit_per_minute)
        session = await self._session(principal)
        outcome = await session.scan.scan(payload, provider, session.location)
        if not outcome.accepted:
            return ScanReport(outcome=outcome)
        member = outcome.member
        session.member = member
        await visit_sockets.emit_visit_accepted(member, confirmed=outcome.confirmed)
        if outcome.reward_granted:
            await visit_sockets.emit_reward_granted(member, outcome.earned_reward)
        rule = motivation.motivation_for(member.visits)
        return ScanReport(
            outcome=outcome,
            motivation=rule.message if rule else None,
            encouragement=motivation.random_encouragement(),
        )

    async def get_location(self, principal: auth.AuthenticatedUser) -> ClubLocation:
        session = await self._session(principal)
        return session.location

    async def cancel_scan(self, principal: auth.AuthenticatedUser) -> bool:
        session = await self._session(principal)
        return session.scan.cancel()

    async def get_member(self, principal: auth.AuthenticatedUser) -> Member:
        session = await self._session(principal)
        return await session.refresh()

    async def get_progress(self, principal: auth.AuthenticatedUser) -> tuple[Member, Progress]:
        member = await self.get_member(principal)
        return member, self._ledger.progress_to_next_reward(member.visits)

    async def get_recent_visits(self, principal: auth.AuthenticatedUser, limit: int = 10) -> List[Visit]:
        return await self._ledger.recent_visits(principal.id, principal.club_id, limit)

    async def get_member_stats(self, principal: auth.AuthenticatedUser) -> MemberStats:
        member = await self.get_member(principal)
        recent = await self._ledger.recent_visits(member.id, member.club_id, STATS_RECENT_VISITS)
        earned = await self._ledger.earned_rewards(member.id, member.club_id)
        return MemberStats(
            total_visits=member.visits,
            total_rewards=member.total_rewards,
            level=member.level,
            next_level_visits=levels.next_level_visits(member.visits),
            progress=levels.progress_to_next_reward(member.visits),
            join_date=member.join_date,
            last_visit=member.last_visit,
            unclaimed_rewards=sum(1 for reward in earned if not reward.claimed),
            recent_visits=recent,
        )

    async def eligible_rewards(self, principal: auth.AuthenticatedUser) -> List[RewardCatalogEntry]:
        """Catalog entries the member's visit count already unlocks."""
        member = await self.get_member(principal)
        catalog = await self._layer.list_rewards(member.club_id)
        return [entry for entry in catalog if entry.required_visits <= member.visits]

    async def earned_rewards(self, principal: auth.AuthenticatedUser) -> List[EarnedReward]:
        return await self._ledger.earned_rewards(principal.id, principal.club_id)

    async def claim_reward(self, principal: auth.AuthenticatedUser, reward_id: str) -> EarnedReward:
        return await self._ledger.claim_reward(principal.id, principal.club_id, reward_id)
