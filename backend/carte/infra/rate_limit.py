"""Fixed-window budgets for scans and administrator sign-ins, kept in Redis."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional

from carte.domain.errors import RateLimited
from carte.infra.redis import redis_client
from carte.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Budget:
	allowed: bool
	remaining: int
	retry_after: int  # seconds until the window rolls over


async def consume(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> Budget:
	"""Spend one unit of ``actor_id``'s budget for ``kind`` in the current window."""

	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	retry_after = max(1, int(math.ceil((slot + 1) * window - now)))
	if limit <= 0:
		return Budget(allowed=False, remaining=0, retry_after=retry_after)
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	count = int(count)
	return Budget(allowed=count <= limit, remaining=max(0, limit - count), retry_after=retry_after)


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> Budget:
	"""Like :func:`consume` but raises :class:`RateLimited` once the budget is spent."""

	budget = await consume(kind, actor_id, limit=limit, window_seconds=window_seconds)
	if not budget.allowed:
		obs_metrics.inc_rate_limited(kind)
		logger.info("Rate limit reached", extra={"kind": kind, "retry_after": budget.retry_after})
		raise RateLimited(kind, budget.retry_after)
	return budget
