from fastapi import APIRouter, Depends, Query

from carte.api.deps import get_admin_service
from carte.domain.clubs.schemas import ClubInfoOut
from carte.domain.clubs.service import AdminService

router = APIRouter(prefix="/clubs", tags=["clubs"])


@router.get("/lookup", response_model=ClubInfoOut)
async def lookup_club(
    name: str = Query(..., min_length=1, max_length=120),
    service: AdminService = Depends(get_admin_service),
):
    """Resolve a gym name to its club so members can log in."""
    return ClubInfoOut.from_domain(await service.lookup_club(name))


@router.get("/{club_id}", response_model=ClubInfoOut)
async def get_club(club_id: str, service: AdminService = Depends(get_admin_service)):
    return ClubInfoOut.from_domain(await service.get_club_info(club_id))
