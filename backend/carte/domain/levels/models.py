"""Domain models for membership levels and reward progress."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MemberLevel(str, Enum):
    BRONZE = "Bronze"
    ARGENT = "Argent"
    OR = "Or"
    PLATINE = "Platine"


@dataclass(frozen=True)
class Progress:
    current: int
    required: int
    percentage: float


# Inclusive lower bounds, ascending.
LEVEL_THRESHOLDS = {
    MemberLevel.BRONZE: 0,
    MemberLevel.ARGENT: 30,
    MemberLevel.OR: 70,
    MemberLevel.PLATINE: 150,
}

LEVEL_EMOJI = {
    MemberLevel.BRONZE: "🥉",
    MemberLevel.ARGENT: "🥈",
    MemberLevel.OR: "🥇",
    MemberLevel.PLATINE: "💎",
}

# Milestone shown once a member is already Platine.
MILESTONE_AFTER_TOP_LEVEL = 300
