"""
Position Registry
=================

In-memory map ``driver_id -> DriverPosition``: the low-latency source for
live maps, order notifications and online-driver counts.

Write contract
--------------
* ``report`` replaces the entry wholesale (last write wins, no merge).
* ``mark_offline`` flips ``is_online`` on every entry bound to a connection
  handle and on no other entry.
* Entries are never deleted.  *Absent* means the driver never reported since
  process start; *offline* means it reported, then its connection closed.

Writes for one driver are serialized by that driver's lock stripe.  A
secondary index ``handle -> driver ids`` keeps ``mark_offline`` proportional
to the drivers on that handle instead of a scan of the whole table; an H3
cell index serves ``nearby``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Optional

from src.domain.cells import covering_cell_count, covering_cells, position_cell
from src.domain.distance import haversine_km
from src.domain.entities import DriverPosition
from src.infrastructure.locks import StripedLock

logger = logging.getLogger(__name__)


class PositionRegistry:
    def __init__(self, stripes: int = 64, h3_resolution: int = 7):
        self._entries: dict[int, DriverPosition] = {}
        self._by_handle: dict[str, set[int]] = defaultdict(set)
        self._by_cell: dict[str, set[int]] = defaultdict(set)
        self._locks = StripedLock(stripes)
        self.h3_resolution = h3_resolution

    def __len__(self) -> int:
        return len(self._entries)

    async def report(self, position: DriverPosition) -> Optional[bool]:
        """
        Store *position* as the driver's entry.

        Returns the previous ``is_online`` flag, or ``None`` if the driver was
        absent, so callers can detect offline -> online transitions.
        """
        if position.h3_cell is None:
            position = _with_cell(position, self.h3_resolution)

        async with self._locks.for_key(position.driver_id):
            previous = self._entries.get(position.driver_id)
            self._reindex(previous, position)
            self._entries[position.driver_id] = position

        return previous.is_online if previous is not None else None

    def get(self, driver_id: int) -> Optional[DriverPosition]:
        return self._entries.get(driver_id)

    async def mark_offline(self, handle: str) -> set[int]:
        """Flip every entry bound to *handle* offline; return their driver ids."""
        affected: set[int] = set()
        for driver_id in list(self._by_handle.get(handle, ())):
            async with self._locks.for_key(driver_id):
                current = self._entries.get(driver_id)
                # The driver may have moved to another handle while we waited.
                if current is None or current.handle != handle:
                    continue
                if current.is_online:
                    self._entries[driver_id] = current.gone_offline()
                affected.add(driver_id)
        if affected:
            logger.info("Drivers %s offline (handle %s)", sorted(affected), handle)
        return affected

    def snapshot(self) -> list[DriverPosition]:
        return list(self._entries.values())

    def count_online(self) -> int:
        return sum(1 for p in self.snapshot() if p.is_online)

    def nearby(
        self, lat: float, lon: float, radius_km: float, limit: int = 50
    ) -> list[tuple[DriverPosition, float]]:
        """Online drivers within *radius_km*, nearest first, with their distance."""
        if covering_cell_count(radius_km, self.h3_resolution) < len(self._entries):
            cells = covering_cells(lat, lon, radius_km, self.h3_resolution)
            candidates = {
                driver_id
                for cell in cells
                for driver_id in tuple(self._by_cell.get(cell, ()))
            }
            positions = [self._entries[d] for d in candidates if d in self._entries]
        else:
            positions = self.snapshot()

        found = []
        for position in positions:
            if not position.is_online:
                continue
            distance = haversine_km(lat, lon, position.lat, position.lon)
            if distance <= radius_km:
                found.append((position, distance))
        found.sort(key=lambda item: item[1])
        return found[:limit]

    # ── Internals ─────────────────────────────────────────────────────

    def _reindex(self, previous: Optional[DriverPosition], new: DriverPosition) -> None:
        driver_id = new.driver_id
        if previous is not None:
            if previous.handle != new.handle and previous.handle is not None:
                self._discard(self._by_handle, previous.handle, driver_id)
            if previous.h3_cell != new.h3_cell and previous.h3_cell is not None:
                self._discard(self._by_cell, previous.h3_cell, driver_id)
        if new.handle is not None:
            self._by_handle[new.handle].add(driver_id)
        if new.h3_cell is not None:
            self._by_cell[new.h3_cell].add(driver_id)

    @staticmethod
    def _discard(index: dict[str, set[int]], key: str, driver_id: int) -> None:
        members = index.get(key)
        if members is not None:
            members.discard(driver_id)
            if not members:
                del index[key]


def _with_cell(position: DriverPosition, resolution: int) -> DriverPosition:
    return replace(position, h3_cell=position_cell(position.lat, position.lon, resolution))
