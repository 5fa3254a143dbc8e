"""Pure rules mapping a visit count to a level and reward credits."""

from __future__ import annotations

from typing import Optional

from carte.domain.levels.models import (
    LEVEL_THRESHOLDS,
    MILESTONE_AFTER_TOP_LEVEL,
    MemberLevel,
    Progress,
)
from carte.settings import settings


def _check(visits: int) -> None:
    if visits < 0:
        raise ValueError("visit count must be non-negative")


def visits_per_reward() -> int:
    return settings.visits_per_reward


def level_for(visits: int) -> MemberLevel:
    """Return the level whose inclusive lower bound is the highest one reached."""
    _check(visits)
    for level in sorted(LEVEL_THRESHOLDS, key=LEVEL_THRESHOLDS.__getitem__, reverse=True):
        if visits >= LEVEL_THRESHOLDS[level]:
            return level
    return MemberLevel.BRONZE


def reward_credits_for(visits: int, per_reward: Optional[int] = None) -> int:
    _check(visits)
    return visits // (per_reward or visits_per_reward())


def next_level_visits(visits: int) -> int:
    _check(visits)
    for threshold in sorted(LEVEL_THRESHOLDS.values()):
        if visits < threshold:
            return threshold
    return MILESTONE_AFTER_TOP_LEVEL


def progress_to_next_reward(visits: int, per_reward: Optional[int] = None) -> Progress:
    _check(visits)
    required = per_reward or visits_per_reward()
    current = visits % required
    return Progress(current=current, required=required, percentage=current / required * 100)
