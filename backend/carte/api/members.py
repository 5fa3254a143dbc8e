from fastapi import APIRouter, Depends, Query, status

from carte.api.deps import get_member_service
from carte.domain.clubs.schemas import MemberOut, RewardOut
from carte.domain.identity.schemas import MemberLoginRequest, TokenResponse
from carte.domain.members.service import MemberService
from carte.domain.visits.schemas import (
    EarnedRewardOut,
    MemberProgressResponse,
    MemberStatsResponse,
    VisitListResponse,
    VisitOut,
)
from carte.infra.auth import AuthenticatedUser, get_member_user
from carte.settings import settings

router = APIRouter(prefix="/members", tags=["members"])


class MemberLoginResponse(TokenResponse):
    member: MemberOut
    created: bool


@router.post("/login", response_model=MemberLoginResponse)
async def login_member(payload: MemberLoginRequest, service: MemberService = Depends(get_member_service)):
    """Sign in by name within a club; unknown names are registered on the spot."""
    result = await service.login_member(payload.name, payload.club_id)
    return MemberLoginResponse(
        access_token=result.access_token,
        expires_in=settings.access_ttl_minutes * 60,
        session_id=result.session_id,
        member=MemberOut.from_domain(result.member),
        created=result.created,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_member(
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
) -> None:
    await service.logout(user)


@router.get("/me/progress", response_model=MemberProgressResponse)
async def get_progress(
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    member, progress = await service.get_progress(user)
    return MemberProgressResponse.build(member, progress)


@router.get("/me/visits", response_model=VisitListResponse)
async def get_recent_visits(
    limit: int = Query(default=10, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    visits = await service.get_recent_visits(user, limit)
    return VisitListResponse(items=[VisitOut.from_domain(visit) for visit in visits])


@router.get("/me/stats", response_model=MemberStatsResponse)
async def get_member_stats(
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    return MemberStatsResponse.from_domain(await service.get_member_stats(user))


@router.get("/me/rewards")
async def get_rewards(
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
) -> dict[str, list]:
    """Unlocked catalog entries and the milestone rewards earned so far."""
    eligible = await service.eligible_rewards(user)
    earned = await service.earned_rewards(user)
    return {
        "eligible": [RewardOut.from_domain(entry) for entry in eligible],
        "earned": [EarnedRewardOut.from_domain(reward) for reward in earned],
    }


@router.post("/me/rewards/{reward_id}/claim", response_model=EarnedRewardOut)
async def claim_reward(
    reward_id: str,
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    return EarnedRewardOut.from_domain(await service.claim_reward(user, reward_id))
