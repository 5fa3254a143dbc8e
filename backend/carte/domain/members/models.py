"""Read models assembled for a signed-in member."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from carte.domain.levels.models import MemberLevel, Progress
from carte.domain.scan.models import ScanOutcome
from carte.domain.visits.models import Member, Visit


@dataclass(frozen=True)
class MemberStats:
    total_visits: int
    total_rewards: int
    level: MemberLevel
    next_level_visits: int
    progress: Progress
    join_date: datetime
    last_visit: Optional[datetime]
    unclaimed_rewards: int
    recent_visits: List[Visit] = field(default_factory=list)


@dataclass(frozen=True)
class ScanReport:
    """A scan outcome plus the messages shown to the member afterwards."""

    outcome: ScanOutcome
    motivation: Optional[str] = None
    encouragement: Optional[str] = None


@dataclass(frozen=True)
class LoginResult:
    member: Member
    access_token: str
    session_id: str
    created: bool
