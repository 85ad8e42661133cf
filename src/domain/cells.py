"""
Spatial binning with H3 hexagons.

Used by the Position Registry to answer "which online drivers are near this
point" without a haversine call per known driver: entries are binned by the
cell of their last report, a query expands to the ring of cells that covers
the radius, and only drivers in those cells are measured exactly.

Complexity
----------
* Binning:  O(1) per report.
* Query:    O(k^2) cells for a ring of radius k, then O(m) haversine calls
  for the m drivers found in those cells.
"""

from __future__ import annotations

import math

import h3


def position_cell(lat: float, lon: float, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lon, resolution)


def ring_size_for(radius_km: float, resolution: int = 7) -> int:
    """Number of hexagon rings needed to cover *radius_km* around a cell."""
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
    # Centres k rings out are at least 1.5 * k edges away; pad for both cell
    # offsets and for H3 area distortion.
    return max(1, math.ceil((radius_km + 2 * edge_km) / (1.5 * edge_km)) + 1)


def covering_cells(lat: float, lon: float, radius_km: float, resolution: int = 7) -> set[str]:
    origin = position_cell(lat, lon, resolution)
    return set(h3.grid_disk(origin, ring_size_for(radius_km, resolution)))


def covering_cell_count(radius_km: float, resolution: int = 7) -> int:
    """Size of the disk ``covering_cells`` would return, without building it."""
    k = ring_size_for(radius_km, resolution)
    return 3 * k * (k + 1) + 1
