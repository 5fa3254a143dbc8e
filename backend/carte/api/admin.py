from typing import List

from fastapi import APIRouter, Depends, status

from carte.api.deps import get_admin_service, get_auth_service
from carte.domain.clubs import schemas
from carte.domain.clubs.service import AdminService
from carte.domain.identity.schemas import AdminLoginRequest, AdminOut, AdminSessionResponse, AdminSignUpRequest
from carte.domain.identity.service import AdminSession, AuthService
from carte.infra.auth import AuthenticatedUser, get_admin_user
from carte.settings import settings

router = APIRouter(prefix="/admin", tags=["admin"])


def _session_response(session: AdminSession) -> AdminSessionResponse:
    admin = session.admin
    return AdminSessionResponse(
        access_token=session.access_token,
        expires_in=settings.access_ttl_minutes * 60,
        session_id=session.principal.session_id,
        admin=AdminOut(
            id=admin.id,
            name=admin.name,
            email=admin.email,
            gym_name=admin.gym_name,
            phone=admin.phone,
            is_active=admin.is_active,
        ),
    )


@router.post("/signup", response_model=AdminSessionResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(payload: AdminSignUpRequest, auth: AuthService = Depends(get_auth_service)):
    return _session_response(await auth.sign_up(payload))


@router.post("/login", response_model=AdminSessionResponse)
async def sign_in(payload: AdminLoginRequest, auth: AuthService = Depends(get_auth_service)):
    return _session_response(await auth.sign_in(payload.email, payload.password))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    user: AuthenticatedUser = Depends(get_admin_user),
    auth: AuthService = Depends(get_auth_service),
) -> None:
    await auth.sign_out(user)


@router.put("/club", response_model=schemas.ClubInfoWriteResponse)
async def update_club_info(
    payload: schemas.ClubInfoUpdate,
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    result = await service.update_club_info(user.club_id, payload)
    return schemas.ClubInfoWriteResponse(
        club=schemas.ClubInfoOut.from_domain(result.value),
        confirmed=result.confirmed,
        warning=result.warning,
    )


@router.get("/rewards", response_model=List[schemas.RewardOut])
async def list_rewards(
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    return [schemas.RewardOut.from_domain(entry) for entry in await service.list_rewards(user.club_id)]


@router.post("/rewards", response_model=schemas.RewardWriteResponse, status_code=status.HTTP_201_CREATED)
async def add_reward(
    payload: schemas.RewardCreateRequest,
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    result = await service.add_reward(user.club_id, payload)
    return schemas.RewardWriteResponse(
        reward=schemas.RewardOut.from_domain(result.value),
        confirmed=result.confirmed,
        warning=result.warning,
    )


@router.delete("/rewards/{reward_id}", response_model=schemas.WriteAck)
async def remove_reward(
    reward_id: str,
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    result = await service.remove_reward(user.club_id, reward_id)
    return schemas.WriteAck(confirmed=result.confirmed, warning=result.warning)


@router.get("/members", response_model=List[schemas.MemberOut])
async def list_members(
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    return [schemas.MemberOut.from_domain(member) for member in await service.list_members(user.club_id)]


@router.post("/members", response_model=schemas.MemberWriteResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    payload: schemas.MemberCreateRequest,
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    result = await service.add_member(user.club_id, payload.name, email=payload.email, phone=payload.phone)
    return schemas.MemberWriteResponse(
        member=schemas.MemberOut.from_domain(result.value),
        confirmed=result.confirmed,
        warning=result.warning,
    )


@router.delete("/members/{member_id}", response_model=schemas.WriteAck)
async def remove_member(
    member_id: str,
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    """Remove a member and their visit history."""
    result = await service.remove_member(user.club_id, member_id)
    return schemas.WriteAck(confirmed=result.confirmed, warning=result.warning)


@router.get("/pending", response_model=schemas.PendingWritesResponse)
async def list_pending_writes(
    user: AuthenticatedUser = Depends(get_admin_user),
    service: AdminService = Depends(get_admin_service),
):
    return schemas.PendingWritesResponse(keys=await service.pending_writes(user.club_id))
