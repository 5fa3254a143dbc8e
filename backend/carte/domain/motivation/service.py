"""Pure dispatcher over the motivation rule list."""

from __future__ import annotations

import random
from typing import Optional, Sequence

from carte.domain.levels.service import visits_per_reward
from carte.domain.motivation.models import ENCOURAGEMENTS, MotivationRule, default_rules


def motivation_for(visits: int, rules: Optional[Sequence[MotivationRule]] = None) -> Optional[MotivationRule]:
    """Return the last matching rule, or None."""
    if rules is None:
        rules = default_rules(visits_per_reward())
    matched = None
    for rule in rules:
        if rule.matches(visits):
            matched = rule
    return matched


def should_show_motivation(visits: int) -> bool:
    return motivation_for(visits) is not None


def random_encouragement(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(ENCOURAGEMENTS)
