"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"carte_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"carte_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"carte_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"carte_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

SCAN_OUTCOMES = Counter(
	"carte_scan_outcomes_total",
	"Scan attempts by terminal outcome",
	["outcome"],
)

GEOFENCE_DISTANCE = Histogram(
	"carte_geofence_distance_meters",
	"Distance between reported position and club at scan time",
	buckets=(5, 10, 20, 40, 60, 100, 250, 1000, 10000),
)

VISITS_APPENDED = Counter(
	"carte_visits_appended_total",
	"Visits appended to the ledger",
	["confirmed"],
)

REWARDS_GRANTED = Counter(
	"carte_rewards_granted_total",
	"Reward credits granted by visit milestones",
)

REWARDS_CLAIMED = Counter(
	"carte_rewards_claimed_total",
	"Earned rewards marked as claimed",
)

REMOTE_FALLBACKS = Counter(
	"carte_remote_fallbacks_total",
	"Remote store operations served from the local cache",
	["operation"],
)

INVARIANT_VIOLATIONS = Counter(
	"carte_invariant_violations_total",
	"Member records whose counters disagree with their visit count",
)

MEMBER_SESSIONS = Gauge(
	"carte_member_sessions_active",
	"Hydrated member sessions held in memory",
)

MEMBER_LOGINS = Counter(
	"carte_member_logins_total",
	"Member logins by outcome",
	["result"],
)

ADMIN_AUTH = Counter(
	"carte_admin_auth_total",
	"Administrator authentication attempts",
	["action", "result"],
)

RATE_LIMITED = Counter(
	"carte_rate_limited_total",
	"Requests rejected by the rate limiter",
	["kind"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_scan_outcome(outcome: str) -> None:
	SCAN_OUTCOMES.labels(outcome=outcome).inc()


def observe_geofence_distance(distance_m: float) -> None:
	GEOFENCE_DISTANCE.observe(distance_m)


def inc_visit_appended(confirmed: bool) -> None:
	VISITS_APPENDED.labels(confirmed=str(confirmed).lower()).inc()


def inc_reward_granted() -> None:
	REWARDS_GRANTED.inc()


def inc_reward_claimed() -> None:
	REWARDS_CLAIMED.inc()


def inc_remote_fallback(operation: str) -> None:
	REMOTE_FALLBACKS.labels(operation=operation).inc()


def inc_invariant_violation() -> None:
	INVARIANT_VIOLATIONS.inc()


def set_member_sessions(count: int) -> None:
	MEMBER_SESSIONS.set(count)


def inc_member_login(result: str) -> None:
	MEMBER_LOGINS.labels(result=result).inc()


def inc_admin_auth(action: str, result: str) -> None:
	ADMIN_AUTH.labels(action=action, result=result).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED.labels(kind=kind).inc()


DEPENDENCY_UP = Gauge(
	"carte_dependency_up",
	"Dependency availability as seen by readiness checks",
	["dependency"],
)

DEPENDENCY_LATENCY = Histogram(
	"carte_dependency_check_seconds",
	"Latency of dependency readiness checks",
	["dependency"],
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5),
)


def mark_dependency(name: str, ok: bool, *, latency_seconds: float | None = None) -> None:
	DEPENDENCY_UP.labels(dependency=name).set(1 if ok else 0)
	if latency_seconds is not None:
		DEPENDENCY_LATENCY.labels(dependency=name).observe(latency_seconds)
