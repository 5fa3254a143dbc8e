"""Pydantic schemas for club administration and public club info."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from carte.domain.clubs.models import ClubInfo, RewardCatalogEntry, RewardRarity
from carte.domain.visits.models import Member


class ClubInfoUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=40)
    email: Optional[str] = Field(default=None, max_length=254)
    address: Optional[str] = Field(default=None, max_length=300)
    website: Optional[str] = Field(default=None, max_length=300)
    instagram: Optional[str] = Field(default=None, max_length=300)
    facebook: Optional[str] = Field(default=None, max_length=300)
    welcome_message: Optional[str] = Field(default=None, max_length=2000)
    hours: Optional[str] = Field(default=None, max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    max_distance_m: Optional[int] = Field(default=None, gt=0, le=10_000)


class ClubInfoOut(BaseModel):
    club_id: str
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""
    website: str = ""
    instagram: str = ""
    facebook: str = ""
    welcome_message: str = ""
    hours: str = ""
    max_distance_m: int
    updated_at: datetime
    pending: bool = False

    @classmethod
    def from_domain(cls, info: ClubInfo) -> "ClubInfoOut":
        return cls(
            club_id=info.club_id,
            name=info.name,
            phone=info.phone,
            email=info.email,
            address=info.address,
            website=info.website,
            instagram=info.instagram,
            facebook=info.facebook,
            welcome_message=info.welcome_message,
            hours=info.hours,
            max_distance_m=info.max_distance_m,
            updated_at=info.updated_at,
            pending=info.pending,
        )


class RewardCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=500)
    required_visits: int = Field(..., gt=0)
    rarity: RewardRarity = RewardRarity.COMMON
    emoji: str = Field(default="🎁", max_length=8)


class RewardOut(BaseModel):
    id: str
    name: str
    description: str
    required_visits: int
    rarity: RewardRarity
    emoji: str

    @classmethod
    def from_domain(cls, entry: RewardCatalogEntry) -> "RewardOut":
        return cls(
            id=entry.id,
            name=entry.name,
            description=entry.description,
            required_visits=entry.required_visits,
            rarity=entry.rarity,
            emoji=entry.emoji,
        )


class MemberCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=40)


class MemberOut(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    visits: int
    total_rewards: int
    level: str
    join_date: datetime
    last_visit: Optional[datetime] = None
    pending: bool = False

    @classmethod
    def from_domain(cls, member: Member) -> "MemberOut":
        return cls(
            id=member.id,
            name=member.name,
            email=member.email,
            phone=member.phone,
            visits=member.visits,
            total_rewards=member.total_rewards,
            level=member.level.value,
            join_date=member.join_date,
            last_visit=member.last_visit,
            pending=member.pending,
        )


class WriteAck(BaseModel):
    confirmed: bool = True
    warning: Optional[str] = None


class ClubInfoWriteResponse(WriteAck):
    club: ClubInfoOut


class RewardWriteResponse(WriteAck):
    reward: RewardOut


class MemberWriteResponse(WriteAck):
    member: MemberOut


class PendingWritesResponse(BaseModel):
    keys: List[str]
