"""Club administration: metadata, reward catalog and member roster."""

from __future__ import annotations

import logging
from typing import List, Optional

from carte.domain.clubs import schemas
from carte.domain.clubs.models import DEFAULT_CLUB_INFO, DEFAULT_REWARDS, Admin, ClubInfo, RewardCatalogEntry
from carte.domain.errors import ClubNotFound, LoyaltyError, MemberNotFound, RemoteUnavailable
from carte.domain.sync.models import WriteResult
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits.models import Member, utcnow
from carte.infra.store import new_document_id

logger = logging.getLogger(__name__)


class MemberExists(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("member_exists", status_code=409)


class AdminService:
    """Administrator-side writes, each routed through the consistency layer.

    A store outage never fails these calls: the change is kept locally and
    the result comes back unconfirmed.
    """

    def __init__(self, layer: ConsistencyLayer) -> None:
        self._layer = layer

    async def get_club_info(self, club_id: str) -> ClubInfo:
        info = await self._layer.get_club_info(club_id)
        if info is None:
            raise ClubNotFound()
        return info

    async def lookup_club(self, name: str) -> ClubInfo:
        """Resolve the club a member types in at login."""
        info = await self._layer.find_club_by_name(name)
        if info is None:
            raise ClubNotFound()
        return info

    async def seed_defaults(self, admin: Admin) -> None:
        """Create the default club info and reward catalog for a new club."""
        if await self._layer.get_club_info(admin.id) is None:
            info = ClubInfo(club_id=admin.id, name=admin.gym_name, **DEFAULT_CLUB_INFO)
            await self._offline_tolerant(self._layer.save_club_info(info), info)
        if await self._layer.list_rewards(admin.id):
            return
        for template in DEFAULT_REWARDS:
            entry = RewardCatalogEntry(id=new_document_id(), club_id=admin.id, **template)
            await self._offline_tolerant(self._layer.add_reward(entry), entry)

    async def handle_auth_change(self, event: str, admin: Admin) -> None:
        if event == "signed_up":
            await self.seed_defaults(admin)

    async def update_club_info(self, club_id: str, changes: schemas.ClubInfoUpdate) -> WriteResult[ClubInfo]:
        current = await self.get_club_info(club_id)
        data = current.to_record()
        data.update(changes.model_dump(exclude_none=True))
        data["updated_at"] = utcnow().isoformat()
        info = ClubInfo.from_record(data)
        return await self._offline_tolerant(self._layer.save_club_info(info), info)

    async def list_rewards(self, club_id: str) -> List[RewardCatalogEntry]:
        return await self._layer.list_rewards(club_id)

    async def add_reward(self, club_id: str, payload: schemas.RewardCreateRequest) -> WriteResult[RewardCatalogEntry]:
        entry = RewardCatalogEntry(
            id=new_document_id(),
            club_id=club_id,
            name=payload.name.strip(),
            description=payload.description.strip(),
            required_visits=payload.required_visits,
            rarity=payload.rarity,
            emoji=payload.emoji,
        )
        return await self._offline_tolerant(self._layer.add_reward(entry), entry)

    async def remove_reward(self, club_id: str, reward_id: str) -> WriteResult[None]:
        return await self._offline_tolerant(self._layer.remove_reward(club_id, reward_id), None)

    async def list_members(self, club_id: str) -> List[Member]:
        return await self._layer.list_members(club_id)

    async def add_member(
        self,
        club_id: str,
        name: str,
        *,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> WriteResult[Member]:
        if await self._layer.find_member_by_name(club_id, name) is not None:
            raise MemberExists()
        member = Member(id=new_document_id(), club_id=club_id, name=name.strip(), email=email, phone=phone)
        return await self._offline_tolerant(self._layer.create_member(member), member)

    async def remove_member(self, club_id: str, member_id: str) -> WriteResult[None]:
        """Delete a member and their visits."""
        if await self._layer.get_member(club_id, member_id) is None:
            raise MemberNotFound()
        return await self._offline_tolerant(self._layer.delete_member(club_id, member_id), None)

    async def pending_writes(self, club_id: str) -> List[str]:
        return await self._layer.pending_keys(club_id)

    async def _offline_tolerant(self, write, value):
        try:
            result = await write
        except RemoteUnavailable:
            if isinstance(value, (ClubInfo, Member)):
                value.pending = True
            return WriteResult.offline(value)
        return WriteResult(result if result is not None else value)
