"""Socket.IO namespace streaming live roster snapshots to club administrators."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

import socketio
from socketio.exceptions import ConnectionRefusedError

from carte.domain.clubs.schemas import MemberOut
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits.models import Member
from carte.infra.auth import AuthenticatedUser, verify_access_jwt
from carte.obs import sockets_obs

logger = logging.getLogger(__name__)

NAMESPACE = "/club"

_namespace: Optional["ClubNamespace"] = None


def _token_from(environ: dict, auth: Optional[dict]) -> str:
    payload = auth or {}
    token = payload.get("token")
    if not token:
        header = environ.get("HTTP_AUTHORIZATION", "")
        if header.lower().startswith("bearer "):
            token = header[7:]
    if not token:
        raise ValueError("missing_token")
    return str(token)


class ClubNamespace(socketio.AsyncNamespace):
    """Admins join ``club:{club_id}``; one roster watch runs per watched club."""

    def __init__(self, layer: ConsistencyLayer) -> None:
        super().__init__(NAMESPACE)
        self._layer = layer
        self._sessions: Dict[str, str] = {}
        self._watchers: Dict[str, Set[str]] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    @staticmethod
    def club_room(club_id: str) -> str:
        return f"club:{club_id}"

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        try:
            user: AuthenticatedUser = verify_access_jwt(_token_from(environ, auth))
        except Exception:
            raise ConnectionRefusedError("unauthorized")
        if not user.is_admin:
            raise ConnectionRefusedError("insufficient_role")
        self._sessions[sid] = user.club_id
        await self.enter_room(sid, self.club_room(user.club_id))
        self._watchers.setdefault(user.club_id, set()).add(sid)
        if user.club_id not in self._tasks:
            self._tasks[user.club_id] = asyncio.create_task(self._stream_roster(user.club_id))
        sockets_obs.connected(NAMESPACE)

    async def on_disconnect(self, sid: str) -> None:
        club_id = self._sessions.pop(sid, None)
        if club_id is None:
            return
        sockets_obs.disconnected(NAMESPACE)
        await self.leave_room(sid, self.club_room(club_id))
        watchers = self._watchers.get(club_id, set())
        watchers.discard(sid)
        if not watchers:
            self._watchers.pop(club_id, None)
            task = self._tasks.pop(club_id, None)
            if task is not None:
                task.cancel()

    async def _stream_roster(self, club_id: str) -> None:
        try:
            async for snapshot in self._layer.watch_members(club_id):
                await self.emit_roster(club_id, snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Roster stream stopped", extra={"club_id": club_id}, exc_info=True)
        finally:
            if self._tasks.get(club_id) is asyncio.current_task():
                self._tasks.pop(club_id, None)

    async def emit_roster(self, club_id: str, snapshot: list[Dict[str, Any]]) -> None:
        members = [MemberOut.from_domain(Member.from_record(record)).model_dump(mode="json") for record in snapshot]
        await self.emit("roster:snapshot", {"club_id": club_id, "members": members}, room=self.club_room(club_id))
        sockets_obs.event(NAMESPACE, "roster:snapshot")

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def set_namespace(namespace: Optional[ClubNamespace]) -> None:
    global _namespace
    _namespace = namespace


def get_namespace() -> Optional[ClubNamespace]:
    return _namespace
