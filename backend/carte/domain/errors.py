"""Error taxonomy shared by the loyalty core."""

from __future__ import annotations

from typing import Any, Dict, Optional


class LoyaltyError(Exception):
    """Raised for domain-level failures with optional HTTP status mapping."""

    def __init__(self, reason: str, *, status_code: int = 400):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code

    def extra(self) -> Dict[str, Any]:
        """Additional fields rendered next to ``detail`` in API errors."""
        return {}


class LocationUnavailable(LoyaltyError):
    """The device could not supply a position (permission, timeout, unsupported)."""

    def __init__(self, cause: str = "position_unavailable") -> None:
        super().__init__("location_unavailable", status_code=422)
        self.cause = cause

    def extra(self) -> Dict[str, Any]:
        return {"cause": self.cause}


class GeofenceRejected(LoyaltyError):
    """Position acquired but outside the club's allowed radius."""

    def __init__(self, distance_m: int, max_distance_m: int) -> None:
        super().__init__("not_at_club", status_code=403)
        self.distance_m = distance_m
        self.max_distance_m = max_distance_m

    def extra(self) -> Dict[str, Any]:
        return {"distance_m": self.distance_m, "max_distance_m": self.max_distance_m}


class InvalidScanPayload(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("invalid_code", status_code=400)


class RemoteUnavailable(LoyaltyError):
    """The authoritative store could not complete an operation."""

    def __init__(self, operation: str, cause: Optional[str] = None) -> None:
        super().__init__("remote_unavailable", status_code=503)
        self.operation = operation
        self.cause = cause or "unreachable"

    def extra(self) -> Dict[str, Any]:
        return {"operation": self.operation, "cause": self.cause}


class AuthenticationFailed(LoyaltyError):
    def __init__(self, reason: str = "invalid_credentials") -> None:
        super().__init__(reason, status_code=401)


class InvariantViolation(LoyaltyError):
    """Stored counters disagree with the stored visit count."""

    def __init__(self, member_id: str, *, expected: Dict[str, Any], found: Dict[str, Any]) -> None:
        super().__init__("invariant_violation", status_code=500)
        self.member_id = member_id
        self.expected = expected
        self.found = found


class MemberNotFound(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("member_not_found", status_code=404)


class RewardNotFound(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("reward_not_found", status_code=404)


class ClubNotFound(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("club_not_found", status_code=404)


class SessionExpired(LoyaltyError):
    def __init__(self) -> None:
        super().__init__("session_expired", status_code=401)


class RateLimited(LoyaltyError):
    """Too many scans or sign-in attempts in the current window."""

    def __init__(self, kind: str, retry_after: int) -> None:
        super().__init__("rate_limited", status_code=429)
        self.kind = kind
        self.retry_after = retry_after

    def extra(self) -> Dict[str, Any]:
        return {"retry_after": self.retry_after}
