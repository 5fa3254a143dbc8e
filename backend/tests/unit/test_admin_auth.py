import pytest

from carte.domain.clubs import schemas as club_schemas
from carte.domain.clubs.service import AdminService, MemberExists
from carte.domain.errors import AuthenticationFailed, LoyaltyError, MemberNotFound, RemoteUnavailable
from carte.domain.identity.schemas import AdminSignUpRequest
from carte.domain.identity.service import ADMINS, AuthService, EmailTaken
from carte.infra import auth, jwt as jwt_helper
from carte.infra.password import hash_password, verify_password
from tests.support import CLUB_ID

PASSWORD = "correct horse battery"


@pytest.fixture
def admin_service(layer) -> AdminService:
    return AdminService(layer)


@pytest.fixture
def auth_service(layer, admin_service) -> AuthService:
    service = AuthService(layer)
    service.on_auth_change(admin_service.handle_auth_change)
    return service


def _signup(email: str = "owner@example.com") -> AdminSignUpRequest:
    return AdminSignUpRequest(name="Owner", email=email, password=PASSWORD, gym_name="Iron Temple")


def test_password_hashing_roundtrip():
    hashed = hash_password(PASSWORD)
    assert hashed.startswith("$argon2id$")
    assert verify_password(hashed, PASSWORD)
    assert not verify_password(hashed, "wrong")
    assert not verify_password("not-a-hash", PASSWORD)


@pytest.mark.asyncio
async def test_sign_up_stores_hash_and_seeds_club(auth_service, admin_service, store):
    session = await auth_service.sign_up(_signup("Owner@Example.com"))

    record = await store.get_document(ADMINS, session.admin.id)
    assert record["email"] == "owner@example.com"
    assert record["password_hash"] != PASSWORD

    info = await admin_service.get_club_info(session.admin.id)
    assert info.name == "Iron Temple"
    assert info.phone == "+33 1 23 45 67 89"
    rewards = await admin_service.list_rewards(session.admin.id)
    assert [entry.required_visits for entry in rewards] == [10, 25, 50, 200]

    claims = jwt_helper.decode_access(session.access_token)
    assert claims["role"] == auth.ROLE_ADMIN
    assert claims["club_id"] == session.admin.id
    assert claims["iss"] == jwt_helper.ISSUER


@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(auth_service):
    await auth_service.sign_up(_signup())
    with pytest.raises(EmailTaken):
        await auth_service.sign_up(_signup("OWNER@example.com"))


@pytest.mark.asyncio
async def test_sign_in_and_out(auth_service):
    events = []

    async def _listener(event, admin):
        events.append((event, admin.email))

    unsubscribe = auth_service.on_auth_change(_listener)
    await auth_service.sign_up(_signup())

    session = await auth_service.sign_in("owner@example.com", PASSWORD)
    assert auth.verify_access_jwt(session.access_token).is_admin

    await auth_service.sign_out(session.principal)
    assert await auth.is_revoked(session.principal.session_id)
    assert [event for event, _ in events] == ["signed_up", "signed_in", "signed_out"]

    unsubscribe()
    await auth_service.sign_in("owner@example.com", PASSWORD)
    assert len(events) == 3


@pytest.mark.asyncio
async def test_wrong_password_and_unknown_email_look_the_same(auth_service):
    await auth_service.sign_up(_signup())

    with pytest.raises(AuthenticationFailed) as wrong:
        await auth_service.sign_in("owner@example.com", "not the password")
    with pytest.raises(AuthenticationFailed) as unknown:
        await auth_service.sign_in("nobody@example.com", PASSWORD)

    assert wrong.value.reason == unknown.value.reason == "invalid_credentials"


@pytest.mark.asyncio
async def test_sign_in_is_rate_limited(auth_service):
    for _ in range(10):
        with pytest.raises(AuthenticationFailed):
            await auth_service.sign_in("intruder@example.com", "guess")

    with pytest.raises(LoyaltyError) as exc:
        await auth_service.sign_in("intruder@example.com", "guess")
    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_sign_up_fails_loudly_when_store_is_down(auth_service, store):
    store.offline = True
    with pytest.raises(RemoteUnavailable):
        await auth_service.sign_up(_signup())


@pytest.mark.asyncio
async def test_admin_writes_are_offline_tolerant(admin_service, store, club):
    store.offline = True

    result = await admin_service.add_reward(
        CLUB_ID, club_schemas.RewardCreateRequest(name="Serviette", required_visits=15)
    )

    assert not result.confirmed
    assert result.warning == "offline_saved_locally"
    assert [entry.name for entry in await admin_service.list_rewards(CLUB_ID)] == ["Serviette"]
    assert await admin_service.pending_writes(CLUB_ID) == [f"rewards:{CLUB_ID}"]

    store.offline = False
    assert await admin_service.list_rewards(CLUB_ID) == []
    assert await admin_service.pending_writes(CLUB_ID) == []


@pytest.mark.asyncio
async def test_update_club_info_merges_changes(admin_service, club):
    result = await admin_service.update_club_info(
        CLUB_ID, club_schemas.ClubInfoUpdate(phone="+33 6 00 00 00 00", max_distance_m=120)
    )

    assert result.confirmed
    info = await admin_service.get_club_info(CLUB_ID)
    assert info.phone == "+33 6 00 00 00 00"
    assert info.max_distance_m == 120
    assert info.name == "Carte Challenge"


@pytest.mark.asyncio
async def test_member_roster_management(admin_service, club, ledger):
    created = await admin_service.add_member(CLUB_ID, "Paul", email="paul@example.com")
    assert created.confirmed

    with pytest.raises(MemberExists):
        await admin_service.add_member(CLUB_ID, "paul")

    await ledger.append(created.value.id, CLUB_ID)
    assert [member.visits for member in await admin_service.list_members(CLUB_ID)] == [1]

    await admin_service.remove_member(CLUB_ID, created.value.id)
    assert await admin_service.list_members(CLUB_ID) == []
    with pytest.raises(MemberNotFound):
        await admin_service.remove_member(CLUB_ID, created.value.id)


@pytest.mark.asyncio
async def test_lookup_club_by_name(admin_service, club):
    assert (await admin_service.lookup_club("  carte CHALLENGE ")).club_id == CLUB_ID
