import asyncio

import pytest

from carte.domain.errors import ClubNotFound, LoyaltyError, MemberNotFound, SessionExpired
from carte.domain.geo.service import ReportedPositionProvider
from carte.domain.levels.models import MemberLevel
from carte.domain.members.service import MemberService
from carte.domain.members.session import SessionRegistry
from carte.domain.sync.service import session_key
from carte.domain.visits import sockets as visit_sockets
from carte.infra import auth
from carte.settings import settings
from tests.support import CLUB_ID, CLUB_LAT, CLUB_LON, point_north_of_club

CODE = "carte-challenge-visit-2025"


class RecordingNamespace:
    def __init__(self) -> None:
        self.emitted = []

    async def emit(self, event, data, room=None):
        self.emitted.append((event, data, room))


@pytest.fixture
def registry(layer, ledger) -> SessionRegistry:
    return SessionRegistry(layer, ledger)


@pytest.fixture
def service(layer, ledger, registry) -> MemberService:
    return MemberService(layer, ledger, registry)


async def _login(service: MemberService, name: str = "Alice"):
    result = await service.login_member(name, CLUB_ID)
    return result, auth.verify_access_jwt(result.access_token)


def _at_club() -> ReportedPositionProvider:
    return ReportedPositionProvider(CLUB_LAT, CLUB_LON)


@pytest.mark.asyncio
async def test_alice_reaches_first_reward_on_tenth_scan(service, club):
    result, principal = await _login(service)
    assert result.created
    assert principal.role == auth.ROLE_MEMBER
    assert principal.club_id == CLUB_ID

    reports = [await service.record_scan(principal, CODE, _at_club()) for _ in range(10)]

    assert all(report.outcome.accepted for report in reports)
    assert [report.outcome.reward_granted for report in reports] == [False] * 9 + [True]
    final = reports[-1].outcome.member
    assert (final.visits, final.total_rewards, final.level) == (10, 1, MemberLevel.BRONZE)
    assert reports[0].motivation.startswith("💪")
    assert reports[8].motivation.startswith("🎁")
    assert reports[9].motivation is None
    assert all(report.encouragement for report in reports)

    member, progress = await service.get_progress(principal)
    assert member.visits == 10
    assert (progress.current, progress.required) == (0, 10)


@pytest.mark.asyncio
async def test_login_finds_existing_member_case_insensitively(service, club):
    first, _ = await _login(service, "Alice Martin")
    second, _ = await _login(service, "  alice   MARTIN")
    assert not second.created
    assert second.member.id == first.member.id
    assert second.session_id != first.session_id


@pytest.mark.asyncio
async def test_login_requires_known_club(service):
    with pytest.raises(ClubNotFound):
        await service.login_member("Alice", "no-such-club")


@pytest.mark.asyncio
async def test_rejected_scan_leaves_member_untouched(service, club):
    _, principal = await _login(service)
    lat, lon = point_north_of_club(120)

    report = await service.record_scan(principal, CODE, ReportedPositionProvider(lat, lon))

    assert report.outcome.rejection_reason == "not_at_club"
    assert report.motivation is None
    assert (await service.get_member(principal)).visits == 0


@pytest.mark.asyncio
async def test_scan_events_are_pushed_to_member_room(service, club, make_member):
    namespace = RecordingNamespace()
    visit_sockets.set_namespace(namespace)
    await make_member("Bea", visits=9)
    _, principal = await _login(service, "Bea")

    await service.record_scan(principal, CODE, _at_club())

    events = [event for event, _, _ in namespace.emitted]
    assert events == ["visit:accepted", "reward:granted"]
    _, payload, room = namespace.emitted[0]
    assert room == "member:m-bea"
    assert payload["visits"] == 10
    assert payload["confirmed"] is True
    assert namespace.emitted[1][1]["description"] == "Récompense pour 10 passages"


@pytest.mark.asyncio
async def test_scan_rate_limit(service, club, monkeypatch):
    monkeypatch.setattr(settings, "scan_rate_limit_per_minute", 2)
    _, principal = await _login(service)
    await service.record_scan(principal, "bogus", _at_club())
    await service.record_scan(principal, "bogus", _at_club())

    with pytest.raises(LoyaltyError) as exc:
        await service.record_scan(principal, "bogus", _at_club())
    assert exc.value.status_code == 429
    assert exc.value.extra()["retry_after"] >= 1


@pytest.mark.asyncio
async def test_stats_and_rewards(service, club, layer, make_member):
    from carte.domain.clubs.models import RewardCatalogEntry

    await layer.add_reward(RewardCatalogEntry(id="r-10", club_id=CLUB_ID, name="Gourde", description="", required_visits=10))
    await layer.add_reward(RewardCatalogEntry(id="r-25", club_id=CLUB_ID, name="Coach", description="", required_visits=25))
    await make_member("Cleo", visits=9)
    _, principal = await _login(service, "Cleo")
    for _ in range(2):
        await service.record_scan(principal, CODE, _at_club())

    stats = await service.get_member_stats(principal)
    assert stats.total_visits == 11
    assert stats.total_rewards == 1
    assert stats.next_level_visits == 30
    assert stats.unclaimed_rewards == 1
    assert len(stats.recent_visits) == 2

    eligible = await service.eligible_rewards(principal)
    assert [entry.id for entry in eligible] == ["r-10"]

    earned = await service.earned_rewards(principal)
    claimed = await service.claim_reward(principal, earned[0].id)
    assert claimed.claimed
    assert (await service.get_member_stats(principal)).unclaimed_rewards == 0


@pytest.mark.asyncio
async def test_session_hydrates_and_tears_down(registry, layer, club, make_member):
    await make_member("Dora")
    session = await registry.open("sid-1", "m-dora", CLUB_ID)

    assert session.member.name == "Dora"
    assert session.location.max_distance_m == 60
    assert len(registry) == 1
    assert await layer.read_cached(session_key("sid-1")) == {"member_id": "m-dora", "club_id": CLUB_ID}

    await registry.close("sid-1")
    assert len(registry) == 0
    assert session.member is None
    assert await layer.read_cached(session_key("sid-1")) is None
    with pytest.raises(SessionExpired):
        await registry.get("sid-1", "m-dora")


@pytest.mark.asyncio
async def test_session_rebuilt_from_cache_after_restart(layer, ledger, club, make_member):
    await make_member("Emma")
    await SessionRegistry(layer, ledger).open("sid-2", "m-emma", CLUB_ID)

    restarted = SessionRegistry(layer, ledger)
    session = await restarted.get("sid-2", "m-emma")

    assert session.member.id == "m-emma"
    with pytest.raises(SessionExpired):
        await restarted.get("sid-2", "someone-else")


@pytest.mark.asyncio
async def test_concurrent_lookups_after_restart_share_one_session(layer, ledger, store, club, make_member):
    await make_member("Enzo")
    await SessionRegistry(layer, ledger).open("sid-4", "m-enzo", CLUB_ID)
    restarted = SessionRegistry(layer, ledger)

    first, second = await asyncio.gather(restarted.get("sid-4", "m-enzo"), restarted.get("sid-4", "m-enzo"))
    assert first is second
    assert len(restarted) == 1

    outcomes = await asyncio.gather(
        first.scan.scan(CODE, _at_club(), first.location),
        second.scan.scan(CODE, _at_club(), second.location),
    )

    assert sorted(outcome.outcome for outcome in outcomes) == ["accepted", "ignored"]
    assert len(await store.query("visits", {"member_id": "m-enzo"})) == 1
    assert (await store.get_document("members", "m-enzo"))["visits"] == 1


@pytest.mark.asyncio
async def test_session_for_unknown_member(registry, club):
    with pytest.raises(MemberNotFound):
        await registry.open("sid-3", "ghost", CLUB_ID)


@pytest.mark.asyncio
async def test_logout_revokes_token(service, club):
    _, principal = await _login(service)
    await service.logout(principal)
    assert await auth.is_revoked(principal.session_id)
    with pytest.raises(SessionExpired):
        await service.get_member(principal)


@pytest.mark.asyncio
async def test_offline_scan_is_saved_locally(service, club, store):
    _, principal = await _login(service)
    store.offline = True

    report = await service.record_scan(principal, CODE, _at_club())

    assert report.outcome.accepted
    assert not report.outcome.confirmed
    assert report.outcome.warning == "offline_saved_locally"
    assert (await service.get_member(principal)).visits == 1
