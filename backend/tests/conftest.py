import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from carte.domain.clubs.models import ClubInfo
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits.ledger import VisitLedger
from carte.domain.visits.models import Member
from carte.infra import postgres
from carte.infra.cache import RedisLocalCache
from carte.main import create_app
from carte.settings import settings
from tests.support import CLUB_ID, CLUB_LAT, CLUB_LON, FlakyDocumentStore


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from carte.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop(*_args, **_kwargs):
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "ensure_schema", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def detach_member_sockets():
	from carte.domain.visits import sockets as visit_sockets

	original = visit_sockets._namespace
	visit_sockets.set_namespace(None)
	try:
		yield
	finally:
		visit_sockets.set_namespace(original)


@pytest.fixture(autouse=True)
def force_test_settings(monkeypatch):
	monkeypatch.setattr(settings, "environment", "dev")
	monkeypatch.setattr(settings, "remote_timeout_seconds", 0.2)
	monkeypatch.setattr(settings, "geolocation_timeout_seconds", 5.0)
	monkeypatch.setattr(settings, "visits_per_reward", 10)
	monkeypatch.setattr(settings, "club_latitude", CLUB_LAT)
	monkeypatch.setattr(settings, "club_longitude", CLUB_LON)
	monkeypatch.setattr(settings, "club_max_distance_m", 60)
	monkeypatch.setattr(settings, "scan_rate_limit_per_minute", 30)


@pytest.fixture
def store() -> FlakyDocumentStore:
	return FlakyDocumentStore()


@pytest.fixture
def cache() -> RedisLocalCache:
	return RedisLocalCache(prefix="carte:test")


@pytest.fixture
def layer(store, cache) -> ConsistencyLayer:
	return ConsistencyLayer(store, cache)


@pytest.fixture
def ledger(layer) -> VisitLedger:
	return VisitLedger(layer)


@pytest_asyncio.fixture
async def club(layer) -> ClubInfo:
	info = ClubInfo(club_id=CLUB_ID, name="Carte Challenge", latitude=CLUB_LAT, longitude=CLUB_LON, max_distance_m=60)
	await layer.save_club_info(info)
	return info


@pytest.fixture
def make_member(layer):
	async def _make(name: str = "Alice", visits: int = 0, member_id: str | None = None) -> Member:
		member = Member(id=member_id or f"m-{name.lower()}", club_id=CLUB_ID, name=name)
		if visits:
			member = member.with_visit_count(visits, member.join_date)
		await layer.create_member(member)
		return member

	return _make


@pytest.fixture
def app(store, cache):
	return create_app(store=store, cache=cache)


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
