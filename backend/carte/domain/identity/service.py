"""Administrator authentication backed by the document store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List
from uuid import uuid4

from carte.domain.clubs.models import Admin
from carte.domain.errors import AuthenticationFailed, LoyaltyError
from carte.domain.identity import schemas
from carte.domain.sync.service import ConsistencyLayer
from carte.infra import auth
from carte.infra.password import check_needs_rehash, hash_password, verify_password
from carte.infra.rate_limit import enforce
from carte.infra.store import new_document_id
from carte.obs import metrics as obs_metrics
from carte.settings import settings

logger = logging.getLogger(__name__)

ADMINS = "admins"
LOGIN_ATTEMPTS_PER_MINUTE = 10

AuthListener = Callable[[str, Admin], Awaitable[None]]


class EmailTaken(LoyaltyError):
	def __init__(self) -> None:
		super().__init__("email_taken", status_code=409)


class AdminNotFound(LoyaltyError):
	def __init__(self) -> None:
		super().__init__("admin_not_found", status_code=404)


@dataclass(frozen=True)
class AdminSession:
	admin: Admin
	principal: auth.AuthenticatedUser
	access_token: str


def normalise_email(email: str) -> str:
	return email.strip().lower()


class AuthService:
	"""Sign-in, sign-up and sign-out for club administrators.

	There is no offline path here: a store outage surfaces as
	``RemoteUnavailable`` (503). Listeners registered with
	``on_auth_change`` are awaited with ``("signed_up" | "signed_in" |
	"signed_out", admin)``.
	"""

	def __init__(self, layer: ConsistencyLayer) -> None:
		self._layer = layer
		self._listeners: List[AuthListener] = []

	def on_auth_change(self, callback: AuthListener) -> Callable[[], None]:
		self._listeners.append(callback)

		def _unsubscribe() -> None:
			if callback in self._listeners:
				self._listeners.remove(callback)

		return _unsubscribe

	async def _notify(self, event: str, admin: Admin) -> None:
		for listener in list(self._listeners):
			await listener(event, admin)

	async def _find_by_email(self, email: str) -> Admin | None:
		rows = await self._layer.call(
			f"query:{ADMINS}",
			lambda: self._layer.store.query(ADMINS, {"email": email}, limit=1),
		)
		return Admin.from_record(rows[0]) if rows else None

	async def get_admin(self, admin_id: str) -> Admin:
		record = await self._layer.call(f"get:{ADMINS}", lambda: self._layer.store.get_document(ADMINS, admin_id))
		if record is None:
			raise AdminNotFound()
		return Admin.from_record(record)

	def _open_session(self, admin: Admin) -> AdminSession:
		principal = auth.AuthenticatedUser(
			id=admin.id,
			club_id=admin.id,
			role=auth.ROLE_ADMIN,
			session_id=uuid4().hex,
			name=admin.name,
		)
		return AdminSession(admin=admin, principal=principal, access_token=auth.issue_token(principal))

	async def sign_up(self, payload: schemas.AdminSignUpRequest) -> AdminSession:
		email = normalise_email(payload.email)
		if await self._find_by_email(email) is not None:
			obs_metrics.inc_admin_auth("sign_up", "email_taken")
			raise EmailTaken()
		admin = Admin(
			id=new_document_id(),
			name=payload.name.strip(),
			email=email,
			gym_name=payload.gym_name.strip(),
			phone=payload.phone,
			password_hash=hash_password(payload.password),
		)
		record = admin.to_record()
		await self._layer.call(
			f"create:{ADMINS}",
			lambda: self._layer.store.create_document(ADMINS, record, doc_id=admin.id),
		)
		obs_metrics.inc_admin_auth("sign_up", "ok")
		logger.info("Administrator registered", extra={"admin_id": admin.id})
		await self._notify("signed_up", admin)
		return self._open_session(admin)

	async def sign_in(self, email: str, password: str) -> AdminSession:
		email = normalise_email(email)
		await enforce("admin_login", email, limit=LOGIN_ATTEMPTS_PER_MINUTE)
		admin = await self._find_by_email(email)
		# Same reason for unknown email and wrong password.
		if admin is None or not admin.password_hash or not verify_password(admin.password_hash, password):
			obs_metrics.inc_admin_auth("sign_in", "invalid_credentials")
			raise AuthenticationFailed("invalid_credentials")
		if not admin.is_active:
			obs_metrics.inc_admin_auth("sign_in", "disabled")
			raise AuthenticationFailed("account_disabled")
		if check_needs_rehash(admin.password_hash):
			admin.password_hash = hash_password(password)
			await self._layer.call(
				f"update:{ADMINS}",
				lambda: self._layer.store.update_document(ADMINS, admin.id, {"password_hash": admin.password_hash}),
			)
		obs_metrics.inc_admin_auth("sign_in", "ok")
		await self._notify("signed_in", admin)
		return self._open_session(admin)

	async def sign_out(self, principal: auth.AuthenticatedUser) -> None:
		await auth.revoke_session(principal.session_id, settings.access_ttl_minutes * 60)
		obs_metrics.inc_admin_auth("sign_out", "ok")
		admin = await self.get_admin(principal.id)
		await self._notify("signed_out", admin)
