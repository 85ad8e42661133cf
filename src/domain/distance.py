"""
Distance calculation using the Haversine formula.

Assumption
----------
Great-circle (Haversine) distance stands in for road distance, both for
price estimates and for the actual distance of a completed order.  Routing
and ETA computation are out of scope.

Complexity: O(1) per call, O(n) for a path of n points.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def path_length_km(points: Iterable[Sequence[float]]) -> float:
    """
    Sum of the hops between consecutive ``(lat, lon)`` points.

    The points are used in the order given: no sorting, no de-duplication.
    """
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous[0], previous[1], point[0], point[1])
        previous = point
    return total


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like a till does (0.5 goes up), unlike the banker's ``round``."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor
