"""Motivation rules expressed as plain data."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Tuple

RuleKind = Literal["exact", "modulo"]


@dataclass(frozen=True)
class MotivationRule:
    """``exact`` matches ``visits == value``; ``modulo`` matches ``visits % divisor == value``."""

    id: str
    category: str
    message: str
    kind: RuleKind
    value: int
    divisor: int = 0

    def matches(self, visits: int) -> bool:
        if self.kind == "exact":
            return visits == self.value
        if self.kind == "modulo":
            return self.divisor > 0 and visits % self.divisor == self.value
        raise ValueError(f"unknown rule kind: {self.kind!r}")


def default_rules(per_reward: int) -> Tuple[MotivationRule, ...]:
    """Built-in rules; later entries are more specific and win ties."""
    return (
        MotivationRule("1", "welcome", "🎉 Bienvenue dans votre parcours fitness ! Chaque passage compte.", "exact", 0),
        MotivationRule("2", "beginner", "💪 Premier passage validé ! C'est le début d'une belle aventure.", "exact", 1),
        MotivationRule("3", "progress", "🔥 5 passages déjà ! Vous êtes sur la bonne voie.", "exact", 5),
        MotivationRule(
            "4", "reward_alert", "🏆 Plus que 2 passages avant votre prochaine récompense !", "modulo", per_reward - 2, per_reward
        ),
        MotivationRule(
            "5", "reward_alert", "🎁 Plus qu'un passage avant votre récompense !", "modulo", per_reward - 1, per_reward
        ),
        MotivationRule("6", "achievement", "🥉 Félicitations ! Vous êtes maintenant membre Argent !", "exact", 30),
        MotivationRule("7", "achievement", "🥈 Incroyable ! Niveau Or atteint !", "exact", 70),
        MotivationRule("8", "achievement", "🥇 Exceptionnel ! Vous êtes maintenant Platine !", "exact", 150),
        MotivationRule("9", "progress", "⚡ 25 passages ! Votre régularité est impressionnante.", "exact", 25),
        MotivationRule("10", "progress", "🎯 100 passages ! Vous êtes un vrai champion !", "exact", 100),
    )


ENCOURAGEMENTS: Tuple[str, ...] = (
    "💪 Continuez comme ça !",
    "🔥 Vous êtes en feu !",
    "⭐ Excellent travail !",
    "🎯 Objectif atteint !",
    "🚀 Vers de nouveaux sommets !",
    "💎 Performance de qualité !",
    "🏋️ Champion du fitness !",
    "⚡ Énergie au maximum !",
)
