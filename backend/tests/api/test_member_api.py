import pytest

from carte.settings import settings
from tests.support import CLUB_ID, CLUB_LAT, CLUB_LON, point_north_of_club

CODE = "DEMO_QR_CODE"


async def _login(api_client, name="Alice"):
	response = await api_client.post("/members/login", json={"name": name, "club_id": CLUB_ID})
	assert response.status_code == 200
	body = response.json()
	return body, {"Authorization": f"Bearer {body['access_token']}"}


@pytest.mark.asyncio
async def test_login_creates_then_finds_member(api_client, club):
	first, _ = await _login(api_client, "Alice")
	second, _ = await _login(api_client, "ALICE")

	assert first["created"] is True
	assert second["created"] is False
	assert second["member"]["id"] == first["member"]["id"]
	assert first["member"]["level"] == "Bronze"
	assert first["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_login_unknown_club(api_client):
	response = await api_client.post("/members/login", json={"name": "Alice", "club_id": "nowhere"})
	assert response.status_code == 404
	assert response.json()["detail"] == "club_not_found"


@pytest.mark.asyncio
async def test_accepted_scan(api_client, club):
	_, headers = await _login(api_client)

	response = await api_client.post(
		"/scan", json={"payload": CODE, "latitude": CLUB_LAT, "longitude": CLUB_LON}, headers=headers
	)

	assert response.status_code == 200
	body = response.json()
	assert body["accepted"] is True
	assert body["confirmed"] is True
	assert body["distance_m"] == 0
	assert body["member"]["visits"] == 1
	assert body["motivation"].startswith("💪")
	assert body["encouragement"]


@pytest.mark.asyncio
async def test_invalid_code_is_400(api_client, club):
	_, headers = await _login(api_client)
	response = await api_client.post(
		"/scan", json={"payload": "hello", "latitude": CLUB_LAT, "longitude": CLUB_LON}, headers=headers
	)
	assert response.status_code == 400
	assert response.json()["detail"] == "invalid_code"


@pytest.mark.asyncio
async def test_scan_flood_is_429_with_retry_after(api_client, club, monkeypatch):
	monkeypatch.setattr(settings, "scan_rate_limit_per_minute", 1)
	_, headers = await _login(api_client)
	scan = {"payload": "hello", "latitude": CLUB_LAT, "longitude": CLUB_LON}
	await api_client.post("/scan", json=scan, headers=headers)

	response = await api_client.post("/scan", json=scan, headers=headers)

	assert response.status_code == 429
	body = response.json()
	assert body["detail"] == "rate_limited"
	assert int(response.headers["Retry-After"]) == body["retry_after"]


@pytest.mark.asyncio
async def test_outside_club_is_403_with_distance(api_client, club):
	_, headers = await _login(api_client)
	lat, lon = point_north_of_club(500)

	response = await api_client.post("/scan", json={"payload": CODE, "latitude": lat, "longitude": lon}, headers=headers)

	assert response.status_code == 403
	body = response.json()
	assert body["detail"] == "not_at_club"
	assert body["distance_m"] == 500
	assert body["max_distance_m"] == 60
	assert "request_id" in body


@pytest.mark.asyncio
async def test_location_failure_is_422_with_cause(api_client, club):
	_, headers = await _login(api_client)
	response = await api_client.post(
		"/scan", json={"payload": CODE, "location_error": "permission_denied"}, headers=headers
	)
	assert response.status_code == 422
	assert response.json()["cause"] == "permission_denied"


@pytest.mark.asyncio
async def test_half_a_position_is_rejected(api_client, club):
	_, headers = await _login(api_client)
	response = await api_client.post("/scan", json={"payload": CODE, "latitude": CLUB_LAT}, headers=headers)
	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_offline_scan_returns_warning(api_client, club, store):
	_, headers = await _login(api_client)
	store.offline = True

	response = await api_client.post(
		"/scan", json={"payload": CODE, "latitude": CLUB_LAT, "longitude": CLUB_LON}, headers=headers
	)

	assert response.status_code == 200
	body = response.json()
	assert body["accepted"] is True
	assert body["confirmed"] is False
	assert body["warning"] == "offline_saved_locally"
	assert body["member"]["pending"] is True


@pytest.mark.asyncio
async def test_progress_visits_and_stats(api_client, club, make_member):
	await make_member("Bruno", visits=9)
	_, headers = await _login(api_client, "Bruno")
	for _ in range(3):
		response = await api_client.post(
			"/scan", json={"payload": CODE, "latitude": CLUB_LAT, "longitude": CLUB_LON}, headers=headers
		)
		assert response.status_code == 200

	progress = (await api_client.get("/members/me/progress", headers=headers)).json()
	assert progress["member"]["visits"] == 12
	assert progress["member"]["total_rewards"] == 1
	assert progress["level_emoji"] == "🥉"
	assert progress["progress"] == {"current": 2, "required": 10, "percentage": 20.0, "remaining": 8}

	visits = (await api_client.get("/members/me/visits?limit=2", headers=headers)).json()
	assert len(visits["items"]) == 2

	stats = (await api_client.get("/members/me/stats", headers=headers)).json()
	assert stats["total_visits"] == 12
	assert stats["next_level_visits"] == 30
	assert stats["unclaimed_rewards"] == 1

	rewards = (await api_client.get("/members/me/rewards", headers=headers)).json()
	assert len(rewards["earned"]) == 1
	reward_id = rewards["earned"][0]["id"]
	claimed = await api_client.post(f"/members/me/rewards/{reward_id}/claim", headers=headers)
	assert claimed.status_code == 200
	assert claimed.json()["claimed"] is True

	missing = await api_client.post("/members/me/rewards/nope/claim", headers=headers)
	assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cancel_without_pending_scan(api_client, club):
	_, headers = await _login(api_client)
	response = await api_client.delete("/scan", headers=headers)
	assert response.status_code == 200
	assert response.json() == {"cancelled": False}


@pytest.mark.asyncio
async def test_member_routes_require_token(api_client):
	response = await api_client.get("/members/me/progress")
	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"

	response = await api_client.get("/members/me/progress", headers={"Authorization": "Bearer garbage"})
	assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_token(api_client, club):
	_, headers = await _login(api_client)
	assert (await api_client.post("/members/logout", headers=headers)).status_code == 204

	response = await api_client.get("/members/me/progress", headers=headers)
	assert response.status_code == 401
	assert response.json()["detail"] == "session_revoked"
