"""Scan protocol states and outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from carte.domain.visits.models import EarnedReward, Member


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CODE_REJECTED = "code_rejected"
    LOCATION_PENDING = "location_pending"
    LOCATION_REJECTED = "location_rejected"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class ScanOutcome:
    accepted: bool
    member: Optional[Member] = None
    reward_granted: bool = False
    rejection_reason: Optional[str] = None
    distance_m: Optional[int] = None
    confirmed: bool = True
    warning: Optional[str] = None
    ignored: bool = False
    cause: Optional[str] = None
    earned_reward: Optional[EarnedReward] = None

    @property
    def outcome(self) -> str:
        """Label used for metrics and logs."""
        if self.ignored:
            return "ignored"
        if self.accepted:
            return "accepted" if self.confirmed else "accepted_offline"
        return self.rejection_reason or "rejected"
