"""Pydantic response schemas for member progress, visits and rewards."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from carte.domain.clubs.schemas import MemberOut
from carte.domain.levels.models import LEVEL_EMOJI, Progress
from carte.domain.members.models import MemberStats
from carte.domain.visits.models import EarnedReward, Member, Visit


class ProgressOut(BaseModel):
    current: int
    required: int
    percentage: float
    remaining: int

    @classmethod
    def from_domain(cls, progress: Progress) -> "ProgressOut":
        return cls(
            current=progress.current,
            required=progress.required,
            percentage=round(progress.percentage, 2),
            remaining=progress.required - progress.current,
        )


class MemberProgressResponse(BaseModel):
    member: MemberOut
    level_emoji: str
    progress: ProgressOut

    @classmethod
    def build(cls, member: Member, progress: Progress) -> "MemberProgressResponse":
        return cls(
            member=MemberOut.from_domain(member),
            level_emoji=LEVEL_EMOJI[member.level],
            progress=ProgressOut.from_domain(progress),
        )


class VisitOut(BaseModel):
    id: str
    occurred_at: datetime

    @classmethod
    def from_domain(cls, visit: Visit) -> "VisitOut":
        return cls(id=visit.id, occurred_at=visit.occurred_at)


class VisitListResponse(BaseModel):
    items: List[VisitOut]


class EarnedRewardOut(BaseModel):
    id: str
    type: str
    description: str
    required_visits: int
    rarity: str
    claimed: bool
    earned_at: datetime

    @classmethod
    def from_domain(cls, reward: EarnedReward) -> "EarnedRewardOut":
        return cls(
            id=reward.id,
            type=reward.type,
            description=reward.description,
            required_visits=reward.required_visits,
            rarity=reward.rarity,
            claimed=reward.claimed,
            earned_at=reward.earned_at,
        )


class MemberStatsResponse(BaseModel):
    total_visits: int
    total_rewards: int
    level: str
    next_level_visits: int
    progress: ProgressOut
    join_date: datetime
    last_visit: Optional[datetime] = None
    unclaimed_rewards: int
    recent_visits: List[VisitOut] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, stats: MemberStats) -> "MemberStatsResponse":
        return cls(
            total_visits=stats.total_visits,
            total_rewards=stats.total_rewards,
            level=stats.level.value,
            next_level_visits=stats.next_level_visits,
            progress=ProgressOut.from_domain(stats.progress),
            join_date=stats.join_date,
            last_visit=stats.last_visit,
            unclaimed_rewards=stats.unclaimed_rewards,
            recent_visits=[VisitOut.from_domain(visit) for visit in stats.recent_visits],
        )
