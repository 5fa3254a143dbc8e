"""Socket.IO namespace pushing visit and reward events to members."""

from __future__ import annotations

from typing import Any, Dict, Optional

import socketio
from socketio.exceptions import ConnectionRefusedError

from carte.domain.visits.models import EarnedReward, Member, to_iso
from carte.infra.auth import ROLE_MEMBER, verify_access_jwt
from carte.obs import sockets_obs

NAMESPACE = "/members"

_namespace: Optional["MembersNamespace"] = None


class MembersNamespace(socketio.AsyncNamespace):
    """Namespace for member visit events."""

    def __init__(self) -> None:
        super().__init__(NAMESPACE)
        self._users: Dict[str, str] = {}

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        token = (auth or {}).get("token")
        try:
            user = verify_access_jwt(str(token or ""))
        except Exception:
            raise ConnectionRefusedError("unauthorized")
        if user.role != ROLE_MEMBER:
            raise ConnectionRefusedError("insufficient_role")
        self._users[sid] = user.id
        await self.enter_room(sid, self.member_room(user.id))
        sockets_obs.connected(NAMESPACE)

    async def on_disconnect(self, sid: str) -> None:
        member_id = self._users.pop(sid, None)
        if member_id:
            await self.leave_room(sid, self.member_room(member_id))
            sockets_obs.disconnected(NAMESPACE)

    @staticmethod
    def member_room(member_id: str) -> str:
        return f"member:{member_id}"


def set_namespace(namespace: Optional[MembersNamespace]) -> None:
    global _namespace
    _namespace = namespace


async def emit_visit_accepted(member: Member, *, confirmed: bool = True) -> None:
    if _namespace is None:
        return
    payload: Dict[str, Any] = {
        "visits": member.visits,
        "total_rewards": member.total_rewards,
        "level": member.level.value,
        "last_visit": to_iso(member.last_visit),
        "confirmed": confirmed,
    }
    await _namespace.emit("visit:accepted", payload, room=MembersNamespace.member_room(member.id))
    sockets_obs.event(NAMESPACE, "visit:accepted")


async def emit_reward_granted(member: Member, earned: Optional[EarnedReward] = None) -> None:
    if _namespace is None:
        return
    payload: Dict[str, Any] = {"total_rewards": member.total_rewards, "visits": member.visits}
    if earned is not None:
        payload["reward_id"] = earned.id
        payload["description"] = earned.description
    await _namespace.emit("reward:granted", payload, room=MembersNamespace.member_room(member.id))
    sockets_obs.event(NAMESPACE, "reward:granted")
