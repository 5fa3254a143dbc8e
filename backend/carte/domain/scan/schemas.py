"""Pydantic schemas for the scan endpoint."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from carte.domain.clubs.schemas import MemberOut
from carte.domain.members.models import ScanReport
from carte.domain.visits.schemas import EarnedRewardOut

LocationError = Literal["permission_denied", "position_unavailable", "timeout", "unsupported"]


class ScanRequest(BaseModel):
    """Decoded QR payload plus the position the device acquired for it."""

    payload: str = Field(..., max_length=512)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_error: Optional[LocationError] = None

    @model_validator(mode="after")
    def _position_or_error(self) -> "ScanRequest":
        if self.location_error is None and (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be sent together")
        return self


class ScanResponse(BaseModel):
    accepted: bool
    ignored: bool = False
    rejection_reason: Optional[str] = None
    cause: Optional[str] = None
    distance_m: Optional[int] = None
    confirmed: bool = True
    warning: Optional[str] = None
    reward_granted: bool = False
    member: Optional[MemberOut] = None
    earned_reward: Optional[EarnedRewardOut] = None
    motivation: Optional[str] = None
    encouragement: Optional[str] = None

    @classmethod
    def from_domain(cls, report: ScanReport) -> "ScanResponse":
        outcome = report.outcome
        return cls(
            accepted=outcome.accepted,
            ignored=outcome.ignored,
            rejection_reason=outcome.rejection_reason,
            cause=outcome.cause,
            distance_m=outcome.distance_m,
            confirmed=outcome.confirmed,
            warning=outcome.warning,
            reward_granted=outcome.reward_granted,
            member=MemberOut.from_domain(outcome.member) if outcome.member else None,
            earned_reward=EarnedRewardOut.from_domain(outcome.earned_reward) if outcome.earned_reward else None,
            motivation=report.motivation,
            encouragement=report.encouragement,
        )


class CancelScanResponse(BaseModel):
    cancelled: bool
