import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from carte.domain.errors import MemberNotFound
from carte.domain.levels.models import MemberLevel
from carte.domain.sync.service import member_key
from carte.domain.visits.ledger import VisitLedger
from carte.obs import metrics as obs_metrics
from tests.support import CLUB_ID


@pytest.mark.asyncio
async def test_n_appends_keep_counters_consistent(ledger, store, make_member):
    await make_member("Bob")
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    for i in range(25):
        result = await ledger.append("m-bob", CLUB_ID, start + timedelta(hours=i))
        assert result.confirmed
        assert result.member.is_consistent

    stored = await store.get_document("members", "m-bob")
    assert stored["visits"] == 25
    assert stored["total_rewards"] == 2
    assert stored["level"] == MemberLevel.BRONZE.value
    visits = await store.query("visits", {"member_id": "m-bob"})
    assert len(visits) == 25


@pytest.mark.asyncio
@pytest.mark.parametrize("prior,granted", [(9, True), (10, False), (19, True), (0, False), (29, False)])
async def test_reward_grant_edges(ledger, make_member, prior, granted):
    await make_member("Carla", visits=prior)
    result = await ledger.append("m-carla", CLUB_ID)
    assert result.member.visits == prior + 1
    assert result.reward_granted is granted
    assert (result.earned_reward is not None) is granted


@pytest.mark.asyncio
async def test_level_crosses_boundary_on_append(ledger, make_member):
    await make_member("Dan", visits=29)
    result = await ledger.append("m-dan", CLUB_ID)
    assert result.member.level is MemberLevel.ARGENT


@pytest.mark.asyncio
async def test_granted_reward_is_recorded(ledger, store, make_member):
    await make_member("Eve", visits=9)
    result = await ledger.append("m-eve", CLUB_ID)
    earned = await store.query("earned_rewards", {"member_id": "m-eve"})
    assert len(earned) == 1
    assert earned[0]["id"] == result.earned_reward.id
    assert earned[0]["description"] == "Récompense pour 10 passages"
    assert earned[0]["type"] == "visit_milestone"
    assert earned[0]["claimed"] is False


@pytest.mark.asyncio
async def test_offline_append_is_saved_locally(ledger, layer, store, make_member):
    await make_member("Finn", visits=9)
    store.offline = True

    result = await ledger.append("m-finn", CLUB_ID)

    assert not result.confirmed
    assert result.warning == "offline_saved_locally"
    assert result.reward_granted
    assert result.member.visits == 10
    assert result.member.pending
    cached = await layer.read_cached(member_key(CLUB_ID, "m-finn"))
    assert cached["visits"] == 10
    assert cached["_pending"] is True
    assert member_key(CLUB_ID, "m-finn") in await layer.pending_keys(CLUB_ID)

    store.offline = False
    remote = await store.get_document("members", "m-finn")
    assert remote["visits"] == 9


@pytest.mark.asyncio
async def test_consecutive_offline_appends_build_on_cache(ledger, store, make_member):
    await make_member("Gus", visits=8)
    store.offline = True
    first = await ledger.append("m-gus", CLUB_ID)
    second = await ledger.append("m-gus", CLUB_ID)
    assert (first.member.visits, first.reward_granted) == (9, False)
    assert (second.member.visits, second.reward_granted) == (10, True)


@pytest.mark.asyncio
async def test_inconsistent_prior_record_is_recomputed_without_grant(ledger, store, make_member):
    await make_member("Hana", visits=9)
    await store.update_document("members", "m-hana", {"total_rewards": 5, "level": "Or"})
    before = obs_metrics.INVARIANT_VIOLATIONS._value.get()

    result = await ledger.append("m-hana", CLUB_ID)

    assert result.member.visits == 10
    assert result.member.total_rewards == 1
    assert result.member.level is MemberLevel.BRONZE
    assert result.reward_granted is False
    assert obs_metrics.INVARIANT_VIOLATIONS._value.get() == before + 1


@pytest.mark.asyncio
async def test_concurrent_appends_are_serialised(ledger, store, make_member):
    await make_member("Ines")
    results = await asyncio.gather(*(ledger.append("m-ines", CLUB_ID) for _ in range(5)))
    assert sorted(r.member.visits for r in results) == [1, 2, 3, 4, 5]
    stored = await store.get_document("members", "m-ines")
    assert stored["visits"] == 5


@pytest.mark.asyncio
async def test_unknown_member_raises(ledger):
    with pytest.raises(MemberNotFound):
        await ledger.append("nobody", CLUB_ID)


@pytest.mark.asyncio
async def test_recent_visits_most_recent_first(ledger, make_member):
    await make_member("Jon")
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    for i in range(4):
        await ledger.append("m-jon", CLUB_ID, start + timedelta(days=i))

    recent = await ledger.recent_visits("m-jon", CLUB_ID, limit=3)
    assert [v.occurred_at for v in recent] == [start + timedelta(days=i) for i in (3, 2, 1)]

    again = await ledger.recent_visits("m-jon", CLUB_ID, limit=3)
    assert again == recent
    assert again is not recent


@pytest.mark.asyncio
async def test_recent_visits_offline_reads_cache(ledger, store, make_member):
    await make_member("Kim")
    start = datetime(2025, 3, 1, tzinfo=timezone.utc)
    for i in range(3):
        await ledger.append("m-kim", CLUB_ID, start + timedelta(days=i))
    store.offline = True
    recent = await ledger.recent_visits("m-kim", CLUB_ID, limit=2)
    assert [v.occurred_at for v in recent] == [start + timedelta(days=2), start + timedelta(days=1)]


def test_progress_to_next_reward():
    progress = VisitLedger.progress_to_next_reward(13)
    assert (progress.current, progress.required) == (3, 10)


@pytest.mark.asyncio
async def test_claim_reward(ledger, make_member):
    await make_member("Lea", visits=9)
    result = await ledger.append("m-lea", CLUB_ID)
    claimed = await ledger.claim_reward("m-lea", CLUB_ID, result.earned_reward.id)
    assert claimed.claimed
    rewards = await ledger.earned_rewards("m-lea", CLUB_ID)
    assert [r.claimed for r in rewards] == [True]
