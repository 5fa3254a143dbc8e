"""FastAPI dependencies resolving the services built at startup."""

from __future__ import annotations

from fastapi import Request

from carte.domain.clubs.service import AdminService
from carte.domain.identity.service import AuthService
from carte.domain.members.service import MemberService


def get_member_service(request: Request) -> MemberService:
    return request.app.state.member_service


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service
