"""Domain models for clubs, their reward catalog and administrators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from carte.domain.geo.models import ClubLocation
from carte.domain.visits.models import from_iso, to_iso, utcnow
from carte.settings import settings


class RewardRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def rank(self) -> int:
        return list(RewardRarity).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RewardRarity):
            return NotImplemented
        return self.rank < other.rank


@dataclass
class RewardCatalogEntry:
    id: str
    club_id: str
    name: str
    description: str
    required_visits: int
    rarity: RewardRarity = RewardRarity.COMMON
    emoji: str = "🎁"
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.rarity = RewardRarity(self.rarity)
        if self.required_visits <= 0:
            raise ValueError("required_visits must be positive")

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "club_id": self.club_id,
            "name": self.name,
            "description": self.description,
            "required_visits": self.required_visits,
            "rarity": self.rarity.value,
            "emoji": self.emoji,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RewardCatalogEntry":
        return cls(
            id=str(record["id"]),
            club_id=str(record["club_id"]),
            name=str(record["name"]),
            description=record.get("description") or "",
            required_visits=int(record["required_visits"]),
            rarity=RewardRarity(record.get("rarity") or "common"),
            emoji=record.get("emoji") or "🎁",
            created_at=from_iso(record.get("created_at")) or utcnow(),
        )


@dataclass
class ClubInfo:
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
    latitude: float = field(default_factory=lambda: settings.club_latitude)
    longitude: float = field(default_factory=lambda: settings.club_longitude)
    max_distance_m: int = field(default_factory=lambda: settings.club_max_distance_m)
    updated_at: datetime = field(default_factory=utcnow)
    pending: bool = False

    @property
    def location(self) -> ClubLocation:
        return ClubLocation(self.latitude, self.longitude, self.max_distance_m)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.club_id,
            "club_id": self.club_id,
            "name": self.name,
            "name_key": self.name.casefold(),
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "website": self.website,
            "instagram": self.instagram,
            "facebook": self.facebook,
            "welcome_message": self.welcome_message,
            "hours": self.hours,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "max_distance_m": self.max_distance_m,
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ClubInfo":
        return cls(
            club_id=str(record.get("club_id") or record["id"]),
            name=str(record.get("name") or ""),
            phone=record.get("phone") or "",
            email=record.get("email") or "",
            address=record.get("address") or "",
            website=record.get("website") or "",
            instagram=record.get("instagram") or "",
            facebook=record.get("facebook") or "",
            welcome_message=record.get("welcome_message") or "",
            hours=record.get("hours") or "",
            latitude=float(record.get("latitude", settings.club_latitude)),
            longitude=float(record.get("longitude", settings.club_longitude)),
            max_distance_m=int(record.get("max_distance_m", settings.club_max_distance_m)),
            updated_at=from_iso(record.get("updated_at")) or utcnow(),
            pending=bool(record.get("_pending", False)),
        )


@dataclass
class Admin:
    """Administrator account; its id doubles as the club namespace."""

    id: str
    name: str
    email: str
    gym_name: str
    password_hash: str = ""
    phone: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    is_active: bool = True

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email.lower(),
            "gym_name": self.gym_name,
            "password_hash": self.password_hash,
            "phone": self.phone,
            "created_at": to_iso(self.created_at),
            "is_active": self.is_active,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Admin":
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or ""),
            email=str(record.get("email") or ""),
            gym_name=str(record.get("gym_name") or ""),
            password_hash=record.get("password_hash") or "",
            phone=record.get("phone"),
            created_at=from_iso(record.get("created_at")) or utcnow(),
            is_active=bool(record.get("is_active", True)),
        )


DEFAULT_CLUB_INFO: Dict[str, str] = {
    "phone": "+33 1 23 45 67 89",
    "email": "contact@cartechallenge.com",
    "address": "123 Rue du Fitness, 75001 Paris, France",
    "website": "https://www.cartechallenge.com",
    "instagram": "https://instagram.com/cartechallenge",
    "facebook": "https://facebook.com/cartechallenge",
    "welcome_message": (
        "Notre équipe est disponible du lundi au vendredi de 9h à 18h pour répondre à toutes vos "
        "questions concernant votre programme de fidélité, les récompenses ou l'utilisation de la salle."
    ),
    "hours": "Lundi - Vendredi : 6h00 - 23h00\nSamedi : 8h00 - 20h00\nDimanche : 9h00 - 18h00",
}

DEFAULT_REWARDS: tuple[Dict[str, Any], ...] = (
    {"name": "Gourde Premium", "description": "Gourde isotherme premium avec logo de la salle", "required_visits": 10, "rarity": "common", "emoji": "🚰"},
    {"name": "Séance avec Coach", "description": "Une séance personnalisée avec un coach professionnel", "required_visits": 25, "rarity": "rare", "emoji": "💪"},
    {"name": "Tenue de Sport", "description": "Ensemble complet tenue de sport premium", "required_visits": 50, "rarity": "rare", "emoji": "👕"},
    {"name": "Abonnement 1 mois", "description": "Un mois d'abonnement gratuit à la salle", "required_visits": 200, "rarity": "epic", "emoji": "🎫"},
)
