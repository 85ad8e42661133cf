"""
Order Pricing  (Strategy Pattern)
=================================

Formula
-------
* Rentals and transport orders without both endpoints geolocated pay the
  vehicle's minimum price.
* Transport orders with both endpoints geolocated pay
  ``max(minimum_price, distance_km x price_per_km)``.

The platform keeps a flat commission (15 % by default) whatever the vehicle
category: ``platform_fee = round(amount x rate)`` and
``driver_share = amount - platform_fee``.  The split is computed once, when
the order is created.

Complexity: O(1) per quote.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .distance import haversine_km, round_half_up
from .enums import ServiceType


@dataclass(frozen=True)
class VehicleRates:
    minimum_price: float
    price_per_km: float


@dataclass(frozen=True)
class Quote:
    amount: float
    platform_fee: float
    driver_share: float
    estimated_km: Optional[float]


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, rates: VehicleRates, distance_km: Optional[float]) -> float: ...


class MinimumPricing(PricingStrategy):
    def calculate(self, rates: VehicleRates, distance_km: Optional[float]) -> float:
        return rates.minimum_price


class DistancePricing(PricingStrategy):
    def calculate(self, rates: VehicleRates, distance_km: Optional[float]) -> float:
        if distance_km is None:
            return rates.minimum_price
        return max(rates.minimum_price, distance_km * rates.price_per_km)


# ── Engine facade ─────────────────────────────────────────────────────


def split_commission(amount: float, fee_rate: float) -> tuple[float, float]:
    """Return ``(platform_fee, driver_share)``; the two always sum to *amount*."""
    platform_fee = round_half_up(amount * fee_rate)
    return platform_fee, amount - platform_fee


class PricingEngine:
    """High-level API used by the order lifecycle manager."""

    def __init__(
        self,
        fee_rate: float = 0.15,
        default_minimum_price: float = 5000.0,
        default_price_per_km: float = 500.0,
    ):
        self.fee_rate = fee_rate
        self.default_minimum_price = default_minimum_price
        self.default_price_per_km = default_price_per_km

    def rates_for(
        self, minimum_price: Optional[float], price_per_km: Optional[float]
    ) -> VehicleRates:
        return VehicleRates(
            minimum_price=(
                self.default_minimum_price if minimum_price is None else minimum_price
            ),
            price_per_km=(
                self.default_price_per_km if price_per_km is None else price_per_km
            ),
        )

    @staticmethod
    def strategy_for(service_type: ServiceType) -> PricingStrategy:
        if service_type == ServiceType.TRANSPORT:
            return DistancePricing()
        return MinimumPricing()

    def quote(
        self,
        rates: VehicleRates,
        service_type: ServiceType,
        pickup: Optional[tuple[float, float]],
        dropoff: Optional[tuple[float, float]],
    ) -> Quote:
        estimated_km = None
        if pickup is not None and dropoff is not None:
            estimated_km = haversine_km(pickup[0], pickup[1], dropoff[0], dropoff[1])

        amount = self.strategy_for(service_type).calculate(rates, estimated_km)
        platform_fee, driver_share = split_commission(amount, self.fee_rate)
        return Quote(
            amount=amount,
            platform_fee=platform_fee,
            driver_share=driver_share,
            estimated_km=estimated_km,
        )
