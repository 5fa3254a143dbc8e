"""Domain models for members, visits and earned rewards."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from carte.domain.levels.models import MemberLevel
from carte.domain.levels.service import level_for, reward_credits_for


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def name_key(name: str) -> str:
    """Case-insensitive lookup key for member names within a club."""
    return " ".join(name.split()).casefold()


@dataclass
class Member:
    id: str
    club_id: str
    name: str
    visits: int = 0
    total_rewards: int = 0
    level: MemberLevel = MemberLevel.BRONZE
    join_date: datetime = field(default_factory=utcnow)
    last_visit: Optional[datetime] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    # True while the record only exists in the local cache.
    pending: bool = False

    @property
    def is_consistent(self) -> bool:
        return self.total_rewards == reward_credits_for(self.visits) and self.level == level_for(self.visits)

    def with_visit_count(self, visits: int, occurred_at: datetime) -> "Member":
        return replace(
            self,
            visits=visits,
            total_rewards=reward_credits_for(visits),
            level=level_for(visits),
            last_visit=occurred_at,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "club_id": self.club_id,
            "name": self.name,
            "name_key": name_key(self.name),
            "email": self.email,
            "phone": self.phone,
            "visits": self.visits,
            "total_rewards": self.total_rewards,
            "level": self.level.value,
            "join_date": to_iso(self.join_date),
            "last_visit": to_iso(self.last_visit),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Member":
        return cls(
            id=str(record["id"]),
            club_id=str(record["club_id"]),
            name=str(record["name"]),
            email=record.get("email"),
            phone=record.get("phone"),
            visits=int(record.get("visits") or 0),
            total_rewards=int(record.get("total_rewards") or 0),
            level=MemberLevel(record.get("level") or MemberLevel.BRONZE.value),
            join_date=from_iso(record.get("join_date")) or utcnow(),
            last_visit=from_iso(record.get("last_visit")),
            pending=bool(record.get("_pending", False)),
        )


@dataclass(frozen=True)
class Visit:
    id: str
    member_id: str
    club_id: str
    occurred_at: datetime

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "club_id": self.club_id,
            "occurred_at": to_iso(self.occurred_at),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Visit":
        return cls(
            id=str(record["id"]),
            member_id=str(record["member_id"]),
            club_id=str(record["club_id"]),
            occurred_at=from_iso(record["occurred_at"]) or utcnow(),
        )


@dataclass
class EarnedReward:
    """Milestone reward issued when a visit raises the member's credit count."""

    id: str
    member_id: str
    club_id: str
    required_visits: int
    description: str
    earned_at: datetime = field(default_factory=utcnow)
    type: str = "visit_milestone"
    rarity: str = "common"
    claimed: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "club_id": self.club_id,
            "type": self.type,
            "description": self.description,
            "earned_at": to_iso(self.earned_at),
            "claimed": self.claimed,
            "rarity": self.rarity,
            "required_visits": self.required_visits,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "EarnedReward":
        return cls(
            id=str(record["id"]),
            member_id=str(record["member_id"]),
            club_id=str(record["club_id"]),
            type=record.get("type") or "visit_milestone",
            description=record.get("description") or "",
            earned_at=from_iso(record.get("earned_at")) or utcnow(),
            claimed=bool(record.get("claimed", False)),
            rarity=record.get("rarity") or "common",
            required_visits=int(record.get("required_visits") or 0),
        )


@dataclass(frozen=True)
class AppendResult:
    visit: Visit
    member: Member
    reward_granted: bool
    confirmed: bool = True
    warning: Optional[str] = None
    earned_reward: Optional[EarnedReward] = None
