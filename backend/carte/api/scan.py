from fastapi import APIRouter, Depends

from carte.api.deps import get_member_service
from carte.domain.errors import GeofenceRejected, InvalidScanPayload, LocationUnavailable
from carte.domain.geo.service import ReportedPositionProvider
from carte.domain.members.service import MemberService
from carte.domain.scan.schemas import CancelScanResponse, ScanRequest, ScanResponse
from carte.infra.auth import AuthenticatedUser, get_member_user

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("", response_model=ScanResponse)
async def record_scan(
    payload: ScanRequest,
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    """Validate a scanned code against the club geofence and record the visit.

    Accepted scans return 200 even when only saved locally (``confirmed`` is
    false and ``warning`` says so). Rejections map to error responses that
    carry the actionable reason.
    """
    provider = ReportedPositionProvider(payload.latitude, payload.longitude, error=payload.location_error)
    report = await service.record_scan(user, payload.payload, provider)
    outcome = report.outcome
    if outcome.rejection_reason == "invalid_code":
        raise InvalidScanPayload()
    if outcome.rejection_reason == "not_at_club":
        location = await service.get_location(user)
        raise GeofenceRejected(outcome.distance_m or 0, location.max_distance_m)
    if outcome.rejection_reason == "location_unavailable":
        raise LocationUnavailable(outcome.cause or "position_unavailable")
    return ScanResponse.from_domain(report)


@router.delete("", response_model=CancelScanResponse)
async def cancel_scan(
    user: AuthenticatedUser = Depends(get_member_user),
    service: MemberService = Depends(get_member_service),
):
    return CancelScanResponse(cancelled=await service.cancel_scan(user))
