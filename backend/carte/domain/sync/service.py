"""Remote-first persistence with a local cache fallback.

Every mutation is attempted against the authoritative document store first.
When it succeeds the confirmed record overwrites the local cache. When the
store is unreachable the same mutation is applied to the cache, the touched
keys are marked pending, and ``RemoteUnavailable`` is re-raised so the caller
decides how to surface the warning.

Reads prefer the store and refresh the cache from it; when the store is
unavailable the last cached snapshot is returned. The remote copy always wins
once reachable again: pending local writes are never replayed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from carte.domain.clubs.models import ClubInfo, RewardCatalogEntry
from carte.domain.errors import MemberNotFound, RemoteUnavailable, RewardNotFound
from carte.domain.visits.models import EarnedReward, Member, Visit, name_key
from carte.infra.cache import LocalCache
from carte.infra.store import DocumentNotFound, DocumentStore, Filters
from carte.obs import metrics as obs_metrics
from carte.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

MEMBERS = "members"
VISITS = "visits"
EARNED = "earned_rewards"
REWARDS = "rewards"
CLUB_INFO = "club_info"

PENDING_KEY = "pending"


def member_key(club_id: str, member_id: str) -> str:
    return f"member:{club_id}:{member_id}"


def visits_key(club_id: str, member_id: str) -> str:
    return f"visits:{club_id}:{member_id}"


def earned_key(club_id: str, member_id: str) -> str:
    return f"earned:{club_id}:{member_id}"


def rewards_key(club_id: str) -> str:
    return f"rewards:{club_id}"


def club_key(club_id: str) -> str:
    return f"club:{club_id}"


def roster_key(club_id: str) -> str:
    return f"roster:{club_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def _pending(record: Mapping[str, Any], confirmed: bool) -> Dict[str, Any]:
    data = dict(record)
    if confirmed:
        data.pop("_pending", None)
    else:
        data["_pending"] = True
    return data


class ConsistencyLayer:
    def __init__(self, store: DocumentStore, cache: LocalCache, *, timeout: Optional[float] = None) -> None:
        self._store = store
        self._cache = cache
        self._timeout = settings.remote_timeout_seconds if timeout is None else timeout
        self._pending_lock = asyncio.Lock()

    @property
    def store(self) -> DocumentStore:
        return self._store

    # --- cache plumbing -------------------------------------------------

    async def read_cached(self, key: str) -> Any:
        raw = await self._cache.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def write_cached(self, key: str, value: Any) -> None:
        await self._cache.set(key, json.dumps(value, default=str))

    async def remove_cached(self, key: str) -> None:
        await self._cache.remove(key)

    async def _shadow(self, key: str, value: Any) -> None:
        """Overwrite the cache with remote-confirmed data; failures only log."""
        try:
            await self.write_cached(key, value)
            await self._clear_pending(key)
        except Exception:
            logger.warning("Failed to refresh local cache", extra={"cache_key": key}, exc_info=True)

    async def _mark_pending(self, *keys: str) -> None:
        async with self._pending_lock:
            current = await self.read_cached(PENDING_KEY) or []
            for key in keys:
                if key not in current:
                    current.append(key)
            await self.write_cached(PENDING_KEY, current)

    async def _clear_pending(self, key: str) -> None:
        async with self._pending_lock:
            current = await self.read_cached(PENDING_KEY) or []
            if key in current:
                current.remove(key)
                await self.write_cached(PENDING_KEY, current)

    async def pending_keys(self, club_id: Optional[str] = None) -> List[str]:
        keys = await self.read_cached(PENDING_KEY) or []
        if club_id is None:
            return list(keys)
        return [key for key in keys if key.split(":")[1:2] == [club_id]]

    # --- remote plumbing ------------------------------------------------

    async def call(self, operation: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await a remote operation, converting a timeout into RemoteUnavailable."""
        try:
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteUnavailable(operation, "timeout") from exc

    async def _mutate(
        self,
        operation: str,
        remote: Callable[[], Awaitable[T]],
        local: Callable[[bool], Awaitable[List[str]]],
    ) -> T:
        try:
            result = await self.call(operation, remote)
        except RemoteUnavailable as exc:
            touched = await local(False)
            await self._mark_pending(*touched)
            obs_metrics.inc_remote_fallback(operation)
            logger.warning(
                "Remote write failed, applied to local cache",
                extra={"operation": operation, "cause": exc.cause, "cache_keys": touched},
            )
            raise
        try:
            await local(True)
        except Exception:
            # The remote copy is committed; a stale cache is repaired by the next read.
            logger.warning("Failed to shadow confirmed write", extra={"operation": operation}, exc_info=True)
        return result

    async def _read(self, operation: str, remote: Callable[[], Awaitable[T]], cache_key: str, shadow: bool = True) -> tuple[Optional[T], Any]:
        """Return ``(remote_value, None)`` or ``(None, cached_value)`` when offline."""
        try:
            value = await self.call(operation, remote)
        except RemoteUnavailable as exc:
            obs_metrics.inc_remote_fallback(operation)
            logger.info("Remote read failed, serving cached snapshot", extra={"operation": operation, "cause": exc.cause})
            return None, await self.read_cached(cache_key)
        if shadow:
            await self._shadow(cache_key, value)
        return value, None

    async def _upsert_roster(self, club_id: str, record: Mapping[str, Any]) -> None:
        roster = [item for item in (await self.read_cached(roster_key(club_id)) or []) if item.get("id") != record["id"]]
        roster.insert(0, dict(record))
        await self.write_cached(roster_key(club_id), roster)

    async def _drop_from_roster(self, club_id: str, member_id: str) -> None:
        roster = await self.read_cached(roster_key(club_id)) or []
        await self.write_cached(roster_key(club_id), [item for item in roster if item.get("id") != member_id])

    # --- members --------------------------------------------------------

    async def get_member(self, club_id: str, member_id: str) -> Optional[Member]:
        key = member_key(club_id, member_id)
        remote, cached = await self._read(
            f"get:{MEMBERS}",
            lambda: self._store.get_document(MEMBERS, member_id),
            key,
            shadow=False,
        )
        if remote is not None:
            if remote.get("club_id") != club_id:
                return None
            await self._shadow(key, remote)
            return Member.from_record(remote)
        if cached is None:
            # Store reachable without a copy: a member created offline lives on
            # in the cache until its first confirmed write creates it remotely.
            cached = await self.read_cached(key)
            if not cached or not cached.get("_pending"):
                return None
        if cached.get("club_id") != club_id:
            return None
        return Member.from_record(cached)

    async def find_member_by_name(self, club_id: str, name: str) -> Optional[Member]:
        filters = {"club_id": club_id, "name_key": name_key(name)}
        try:
            rows = await self.call(f"query:{MEMBERS}", lambda: self._store.query(MEMBERS, filters, limit=1))
        except RemoteUnavailable:
            obs_metrics.inc_remote_fallback(f"query:{MEMBERS}")
            for record in await self.read_cached(roster_key(club_id)) or []:
                if record.get("name_key") == filters["name_key"]:
                    return Member.from_record(record)
            return None
        if not rows:
            return None
        await self._shadow(member_key(club_id, rows[0]["id"]), rows[0])
        return Member.from_record(rows[0])

    async def list_members(self, club_id: str) -> List[Member]:
        remote, cached = await self._read(
            f"query:{MEMBERS}",
            lambda: self._store.query(MEMBERS, {"club_id": club_id}, order_by=("join_date", "desc")),
            roster_key(club_id),
        )
        rows = remote if remote is not None else (cached or [])
        return [Member.from_record(row) for row in rows]

    async def create_member(self, member: Member) -> Member:
        record = member.to_record()

        async def remote() -> Member:
            await self._store.create_document(MEMBERS, record, doc_id=member.id)
            return member

        async def local(confirmed: bool) -> List[str]:
            data = _pending(record, confirmed)
            await self.write_cached(member_key(member.club_id, member.id), data)
            await self._upsert_roster(member.club_id, data)
            if confirmed:
                await self._clear_pending(member_key(member.club_id, member.id))
            return [member_key(member.club_id, member.id), roster_key(member.club_id)]

        return await self._mutate(f"create:{MEMBERS}", remote, local)

    async def delete_member(self, club_id: str, member_id: str) -> None:
        async def remote() -> None:
            existing = await self._store.get_document(MEMBERS, member_id)
            if existing is None or existing.get("club_id") != club_id:
                cached = await self.read_cached(member_key(club_id, member_id))
                if existing is None and cached and cached.get("_pending") and cached.get("club_id") == club_id:
                    # Never reached the store; dropping the cached copy is enough.
                    return
                raise MemberNotFound()
            owned = {"club_id": club_id, "member_id": member_id}
            for collection in (VISITS, EARNED):
                for document in await self._store.query(collection, owned):
                    await self._store.delete_document(collection, document["id"])
            await self._store.delete_document(MEMBERS, member_id)

        async def local(confirmed: bool) -> List[str]:
            await self.remove_cached(member_key(club_id, member_id))
            await self.remove_cached(visits_key(club_id, member_id))
            await self.remove_cached(earned_key(club_id, member_id))
            await self._drop_from_roster(club_id, member_id)
            if confirmed:
                for key in (member_key(club_id, member_id), visits_key(club_id, member_id), earned_key(club_id, member_id)):
                    await self._clear_pending(key)
            return [roster_key(club_id)]

        await self._mutate(f"delete:{MEMBERS}", remote, local)

    # --- visits ---------------------------------------------------------

    async def append_visit(self, visit: Visit, member: Member, earned: Optional[EarnedReward] = None) -> None:
        """Persist a visit together with the member counters it produced."""
        member_record = member.to_record()
        counters = {
            key: member_record[key] for key in ("visits", "total_rewards", "level", "last_visit")
        }

        async def remote() -> None:
            await self._store.create_document(VISITS, visit.to_record(), doc_id=visit.id)
            try:
                await self._store.update_document(MEMBERS, member.id, counters)
            except DocumentNotFound:
                # Member was created while offline; the remote copy starts here.
                await self._store.create_document(MEMBERS, member_record, doc_id=member.id)
            if earned is not None:
                await self._store.create_document(EARNED, earned.to_record(), doc_id=earned.id)

        async def local(confirmed: bool) -> List[str]:
            keys = [member_key(member.club_id, member.id), visits_key(member.club_id, member.id)]
            data = _pending(member_record, confirmed)
            await self.write_cached(keys[0], data)
            await self._upsert_roster(member.club_id, data)
            visits = await self.read_cached(keys[1]) or []
            visits.append(_pending(visit.to_record(), confirmed))
            await self.write_cached(keys[1], visits)
            if earned is not None:
                keys.append(earned_key(member.club_id, member.id))
                rewards = await self.read_cached(keys[2]) or []
                rewards.append(_pending(earned.to_record(), confirmed))
                await self.write_cached(keys[2], rewards)
            if confirmed:
                await self._clear_pending(keys[0])
            return keys

        await self._mutate(f"create:{VISITS}", remote, local)

    async def list_visits(self, club_id: str, member_id: str, limit: Optional[int] = None) -> List[Visit]:
        """Visits for a member, most recent first."""
        key = visits_key(club_id, member_id)
        remote, cached = await self._read(
            f"query:{VISITS}",
            lambda: self._store.query(
                VISITS,
                {"club_id": club_id, "member_id": member_id},
                order_by=("occurred_at", "desc"),
                limit=limit,
            ),
            key,
            shadow=False,
        )
        if remote is not None:
            if limit is None:
                await self._shadow(key, list(reversed(remote)))
            rows = remote
        else:
            rows = list(reversed(cached or []))
            if limit is not None:
                rows = rows[:limit]
        return [Visit.from_record(row) for row in rows]

    async def list_earned_rewards(self, club_id: str, member_id: str) -> List[EarnedReward]:
        remote, cached = await self._read(
            f"query:{EARNED}",
            lambda: self._store.query(EARNED, {"club_id": club_id, "member_id": member_id}, order_by=("earned_at", "asc")),
            earned_key(club_id, member_id),
        )
        rows = remote if remote is not None else (cached or [])
        return [EarnedReward.from_record(row) for row in rows]

    async def claim_earned_reward(self, club_id: str, member_id: str, reward_id: str) -> EarnedReward:
        rewards = await self.list_earned_rewards(club_id, member_id)
        match = next((reward for reward in rewards if reward.id == reward_id), None)
        if match is None:
            raise RewardNotFound()
        match.claimed = True

        async def remote() -> EarnedReward:
            await self._store.update_document(EARNED, reward_id, {"claimed": True})
            return match

        async def local(confirmed: bool) -> List[str]:
            key = earned_key(club_id, member_id)
            records = [
                _pending(reward.to_record(), confirmed) if reward.id == reward_id else reward.to_record()
                for reward in rewards
            ]
            await self.write_cached(key, records)
            return [key]

        return await self._mutate(f"update:{EARNED}", remote, local)

    # --- club info and reward catalog -----------------------------------

    async def get_club_info(self, club_id: str) -> Optional[ClubInfo]:
        remote, cached = await self._read(
            f"get:{CLUB_INFO}",
            lambda: self._store.get_document(CLUB_INFO, club_id),
            club_key(club_id),
            shadow=False,
        )
        if remote is not None:
            await self._shadow(club_key(club_id), remote)
            return ClubInfo.from_record(remote)
        if cached is not None:
            return ClubInfo.from_record(cached)
        return None

    async def find_club_by_name(self, name: str) -> Optional[ClubInfo]:
        rows = await self.call(
            f"query:{CLUB_INFO}",
            lambda: self._store.query(CLUB_INFO, {"name_key": name.strip().casefold()}, limit=1),
        )
        return ClubInfo.from_record(rows[0]) if rows else None

    async def save_club_info(self, info: ClubInfo) -> ClubInfo:
        record = info.to_record()

        async def remote() -> ClubInfo:
            await self._store.create_document(CLUB_INFO, record, doc_id=info.club_id)
            return info

        async def local(confirmed: bool) -> List[str]:
            await self.write_cached(club_key(info.club_id), _pending(record, confirmed))
            if confirmed:
                await self._clear_pending(club_key(info.club_id))
            return [club_key(info.club_id)]

        return await self._mutate(f"update:{CLUB_INFO}", remote, local)

    async def list_rewards(self, club_id: str) -> List[RewardCatalogEntry]:
        remote, cached = await self._read(
            f"query:{REWARDS}",
            lambda: self._store.query(REWARDS, {"club_id": club_id}, order_by=("required_visits", "asc")),
            rewards_key(club_id),
        )
        rows = remote if remote is not None else (cached or [])
        return [RewardCatalogEntry.from_record(row) for row in rows]

    async def add_reward(self, entry: RewardCatalogEntry) -> RewardCatalogEntry:
        record = entry.to_record()

        async def remote() -> RewardCatalogEntry:
            await self._store.create_document(REWARDS, record, doc_id=entry.id)
            return entry

        async def local(confirmed: bool) -> List[str]:
            key = rewards_key(entry.club_id)
            catalog = [item for item in (await self.read_cached(key) or []) if item.get("id") != entry.id]
            catalog.append(_pending(record, confirmed))
            catalog.sort(key=lambda item: item.get("required_visits", 0))
            await self.write_cached(key, catalog)
            return [key]

        return await self._mutate(f"create:{REWARDS}", remote, local)

    async def remove_reward(self, club_id: str, reward_id: str) -> None:
        async def remote() -> None:
            existing = await self._store.get_document(REWARDS, reward_id)
            if existing is None or existing.get("club_id") != club_id:
                raise RewardNotFound()
            await self._store.delete_document(REWARDS, reward_id)

        async def local(confirmed: bool) -> List[str]:
            key = rewards_key(club_id)
            catalog = await self.read_cached(key) or []
            await self.write_cached(key, [item for item in catalog if item.get("id") != reward_id])
            return [key]

        await self._mutate(f"delete:{REWARDS}", remote, local)

    # --- live reads -----------------------------------------------------

    async def watch(self, collection: str, filters: Optional[Filters], cache_key: str) -> AsyncIterator[List[Dict[str, Any]]]:
        """Stream snapshots from the store's subscription, else one cached snapshot."""
        operation = f"subscribe:{collection}"
        stream = self._store.subscribe(collection, filters)
        try:
            first = await self.call(operation, stream.__anext__)
        except RemoteUnavailable:
            await stream.aclose()
            obs_metrics.inc_remote_fallback(operation)
            yield await self.read_cached(cache_key) or []
            return
        try:
            await self._shadow(cache_key, first)
            yield first
            async for snapshot in stream:
                await self._shadow(cache_key, snapshot)
                yield snapshot
        except RemoteUnavailable:
            obs_metrics.inc_remote_fallback(operation)
            yield await self.read_cached(cache_key) or []
        finally:
            await stream.aclose()

    def watch_members(self, club_id: str) -> AsyncIterator[List[Dict[str, Any]]]:
        return self.watch(MEMBERS, {"club_id": club_id}, roster_key(club_id))
