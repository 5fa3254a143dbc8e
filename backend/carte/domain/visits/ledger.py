"""Append-only visit ledger and the counters derived from it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from carte.domain.errors import InvariantViolation, MemberNotFound, RemoteUnavailable, RewardNotFound
from carte.domain.levels import service as levels
from carte.domain.levels.models import Progress
from carte.domain.sync.models import OFFLINE_WARNING
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits.models import AppendResult, EarnedReward, Visit, utcnow
from carte.infra.store import new_document_id
from carte.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class VisitLedger:
    """Only writer of member visit counters.

    Appends for the same member are serialised so visits land in acceptance
    order and no increment is lost.
    """

    def __init__(self, layer: ConsistencyLayer) -> None:
        self._layer = layer
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, club_id: str, member_id: str) -> asyncio.Lock:
        key = f"{club_id}:{member_id}"
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def append(self, member_id: str, club_id: str, occurred_at: Optional[datetime] = None) -> AppendResult:
        async with self._lock_for(club_id, member_id):
            return await self._append(member_id, club_id, occurred_at or utcnow())

    async def _append(self, member_id: str, club_id: str, occurred_at: datetime) -> AppendResult:
        prior = await self._layer.get_member(club_id, member_id)
        if prior is None:
            raise MemberNotFound()

        grant_allowed = True
        if not prior.is_consistent:
            violation = InvariantViolation(
                prior.id,
                expected={
                    "total_rewards": levels.reward_credits_for(prior.visits),
                    "level": levels.level_for(prior.visits).value,
                },
                found={"total_rewards": prior.total_rewards, "level": prior.level.value},
            )
            obs_metrics.inc_invariant_violation()
            logger.error(
                "Member counters inconsistent, recomputing without grant",
                extra={"member_id": violation.member_id, "expected": violation.expected, "found": violation.found},
            )
            grant_allowed = False

        member = replace(prior.with_visit_count(prior.visits + 1, occurred_at), pending=False)
        reward_granted = grant_allowed and member.total_rewards > prior.total_rewards
        visit = Visit(id=new_document_id(), member_id=member.id, club_id=club_id, occurred_at=occurred_at)
        earned = None
        if reward_granted:
            earned = EarnedReward(
                id=new_document_id(),
                member_id=member.id,
                club_id=club_id,
                required_visits=member.visits,
                description=f"Récompense pour {member.visits} passages",
                earned_at=occurred_at,
            )

        try:
            await self._layer.append_visit(visit, member, earned)
        except RemoteUnavailable:
            obs_metrics.inc_visit_appended(False)
            if reward_granted:
                obs_metrics.inc_reward_granted()
            return AppendResult(
                visit=visit,
                member=replace(member, pending=True),
                reward_granted=reward_granted,
                confirmed=False,
                warning=OFFLINE_WARNING,
                earned_reward=earned,
            )

        obs_metrics.inc_visit_appended(True)
        if reward_granted:
            obs_metrics.inc_reward_granted()
        logger.info(
            "Visit appended",
            extra={"member_id": member.id, "visits": member.visits, "reward_granted": reward_granted},
        )
        return AppendResult(visit=visit, member=member, reward_granted=reward_granted, earned_reward=earned)

    async def recent_visits(self, member_id: str, club_id: str, limit: int = 10) -> List[Visit]:
        """Most recent first; each call returns a new list."""
        if limit <= 0:
            return []
        return list(await self._layer.list_visits(club_id, member_id, limit=limit))

    @staticmethod
    def progress_to_next_reward(visits: int) -> Progress:
        return levels.progress_to_next_reward(visits)

    async def earned_rewards(self, member_id: str, club_id: str) -> List[EarnedReward]:
        return await self._layer.list_earned_rewards(club_id, member_id)

    async def claim_reward(self, member_id: str, club_id: str, reward_id: str) -> EarnedReward:
        try:
            reward = await self._layer.claim_earned_reward(club_id, member_id, reward_id)
        except RemoteUnavailable:
            cached = await self._layer.list_earned_rewards(club_id, member_id)
            reward = next((item for item in cached if item.id == reward_id), None)
            if reward is None:
                raise RewardNotFound() from None
        obs_metrics.inc_reward_claimed()
        return reward
