"""Authentication helpers for FastAPI endpoints.

Members and administrators both authenticate with HS256 access tokens. The
``role`` claim separates them and ``club_id`` scopes every request to one
club namespace.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carte.infra import jwt as jwt_helper
from carte.infra.redis import redis_client

ROLE_MEMBER = "member"
ROLE_ADMIN = "admin"

_REVOKED_PREFIX = "auth:revoked"


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	club_id: str
	role: str
	session_id: str
	name: Optional[str] = None

	@property
	def is_admin(self) -> bool:
		return self.role == ROLE_ADMIN


_bearer_scheme = HTTPBearer(auto_error=False)


def issue_token(user: AuthenticatedUser) -> str:
	claims: dict[str, object] = {
		"sub": user.id,
		"sid": user.session_id,
		"role": user.role,
		"club_id": user.club_id,
	}
	if user.name:
		claims["name"] = user.name
	return jwt_helper.encode_access(claims)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	name = payload.get("name")
	return AuthenticatedUser(
		id=str(payload["sub"]),
		club_id=str(payload["club_id"]),
		role=str(payload["role"]),
		session_id=str(payload["sid"]),
		name=str(name) if name is not None else None,
	)


async def revoke_session(session_id: str, ttl_seconds: int) -> None:
	await redis_client.set(f"{_REVOKED_PREFIX}:{session_id}", "1", ex=max(1, ttl_seconds))


async def is_revoked(session_id: str) -> bool:
	return bool(await redis_client.exists(f"{_REVOKED_PREFIX}:{session_id}"))


async def get_current_user(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	if not credentials or credentials.scheme.lower() != "bearer":
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	user = verify_access_jwt(credentials.credentials)
	if await is_revoked(user.session_id):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="session_revoked")
	return user


async def get_admin_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.is_admin:
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")


async def get_member_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.role == ROLE_MEMBER:
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")
