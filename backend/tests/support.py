"""Shared test doubles and geometry helpers."""

import asyncio
import math

from carte.domain.errors import RemoteUnavailable
from carte.domain.geo.service import EARTH_RADIUS_M
from carte.infra.cache import MemoryLocalCache
from carte.infra.store import MemoryDocumentStore

CLUB_ID = "club-test"
CLUB_LAT = 48.877053
CLUB_LON = 2.817765


def point_north_of_club(meters: float) -> tuple[float, float]:
	"""Coordinates ``meters`` due north of the test club."""
	return CLUB_LAT + math.degrees(meters / EARTH_RADIUS_M), CLUB_LON


class FlakyDocumentStore(MemoryDocumentStore):
	"""Memory store with switches to simulate an outage or a hanging remote."""

	def __init__(self) -> None:
		super().__init__()
		self.offline = False
		self.hang = False

	async def _guard(self, operation: str) -> None:
		if self.hang:
			await asyncio.sleep(3600)
		if self.offline:
			raise RemoteUnavailable(operation, "unreachable")

	async def get_document(self, collection, doc_id):
		await self._guard(f"get:{collection}")
		return await super().get_document(collection, doc_id)

	async def query(self, collection, filters=None, order_by=None, limit=None):
		await self._guard(f"query:{collection}")
		return await super().query(collection, filters, order_by, limit)

	async def subscribe(self, collection, filters=None):
		await self._guard(f"subscribe:{collection}")
		async for snapshot in super().subscribe(collection, filters):
			yield snapshot

	async def create_document(self, collection, data, doc_id=None):
		await self._guard(f"create:{collection}")
		return await super().create_document(collection, data, doc_id)

	async def update_document(self, collection, doc_id, partial):
		await self._guard(f"update:{collection}")
		return await super().update_document(collection, doc_id, partial)

	async def delete_document(self, collection, doc_id):
		await self._guard(f"delete:{collection}")
		return await super().delete_document(collection, doc_id)


class BrokenCache(MemoryLocalCache):
	"""Memory cache whose writes fail once ``broken`` is set."""

	def __init__(self) -> None:
		super().__init__()
		self.broken = False

	async def set(self, key, value):
		if self.broken:
			raise ConnectionError("cache unavailable")
		await super().set(key, value)

	async def remove(self, key):
		if self.broken:
			raise ConnectionError("cache unavailable")
		await super().remove(key)
