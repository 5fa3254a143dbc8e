"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carte.api import admin, clubs, members, ops, scan
from carte.api.errors import install_error_handlers
from carte.api.middleware_request_id import RequestIdMiddleware
from carte.domain.clubs.service import AdminService
from carte.domain.clubs.sockets import ClubNamespace, set_namespace as set_club_namespace
from carte.domain.identity.service import AuthService
from carte.domain.members.service import MemberService
from carte.domain.members.session import SessionRegistry
from carte.domain.sync.service import ConsistencyLayer
from carte.domain.visits.ledger import VisitLedger
from carte.domain.visits.sockets import MembersNamespace, set_namespace as set_members_namespace
from carte.infra import postgres
from carte.infra.cache import LocalCache, build_local_cache
from carte.infra.store import DocumentStore, PostgresDocumentStore, build_document_store
from carte.obs import init as obs_init
from carte.settings import settings


def _allowed_origins() -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:8081", "http://localhost:19006"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	return [origin for origin in allow_origins if origin != "*"]


@asynccontextmanager
async def lifespan(app: FastAPI):
	if isinstance(app.state.store, PostgresDocumentStore):
		pool = await postgres.init_pool()
		await postgres.ensure_schema(pool)
	try:
		yield
	finally:
		await app.state.club_namespace.shutdown()
		await app.state.sessions.close_all()
		await postgres.close_pool()


def create_app(store: Optional[DocumentStore] = None, cache: Optional[LocalCache] = None) -> FastAPI:
	"""Build the API with its services wired onto ``app.state``."""
	app = FastAPI(title="Carte Challenge Loyalty", lifespan=lifespan)
	install_error_handlers(app)

	store = store if store is not None else build_document_store(settings.remote_store_backend)
	cache = cache if cache is not None else build_local_cache()
	layer = ConsistencyLayer(store, cache)
	ledger = VisitLedger(layer)
	sessions = SessionRegistry(layer, ledger)
	admin_service = AdminService(layer)
	auth_service = AuthService(layer)
	auth_service.on_auth_change(admin_service.handle_auth_change)

	app.state.store = store
	app.state.layer = layer
	app.state.ledger = ledger
	app.state.sessions = sessions
	app.state.admin_service = admin_service
	app.state.auth_service = auth_service
	app.state.member_service = MemberService(layer, ledger, sessions)
	app.state.club_namespace = ClubNamespace(layer)

	app.add_middleware(
		CORSMiddleware,
		allow_origins=_allowed_origins(),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(app)
	app.add_middleware(RequestIdMiddleware)

	app.include_router(members.router)
	app.include_router(scan.router)
	app.include_router(clubs.router)
	app.include_router(admin.router)
	app.include_router(ops.router)
	return app


app = create_app()

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=_allowed_origins())
sio.register_namespace(app.state.club_namespace)
set_club_namespace(app.state.club_namespace)
members_namespace = MembersNamespace()
sio.register_namespace(members_namespace)
set_members_namespace(members_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
