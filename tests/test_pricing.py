"""Unit tests for order pricing and the platform commission."""

import pytest

from src.domain.distance import haversine_km
from src.domain.enums import ServiceType
from src.domain.pricing import (
    DistancePricing,
    MinimumPricing,
    PricingEngine,
    VehicleRates,
    split_commission,
)

PORT = (6.3486, 2.4330)
CALAVI = (6.4485, 2.3557)


class TestPricingStrategies:
    def test_minimum_pricing_ignores_distance(self):
        rates = VehicleRates(minimum_price=60000, price_per_km=1000)
        assert MinimumPricing().calculate(rates, 120.0) == 60000

    def test_distance_pricing_above_minimum(self):
        rates = VehicleRates(minimum_price=5000, price_per_km=500)
        assert DistancePricing().calculate(rates, 20.0) == 10000.0  # 20 * 500

    def test_distance_pricing_floors_at_minimum(self):
        rates = VehicleRates(minimum_price=5000, price_per_km=500)
        assert DistancePricing().calculate(rates, 3.0) == 5000  # 1500 < 5000

    def test_distance_pricing_without_distance(self):
        rates = VehicleRates(minimum_price=5000, price_per_km=500)
        assert DistancePricing().calculate(rates, None) == 5000


class TestCommission:
    def test_fifteen_percent(self):
        assert split_commission(12345, 0.15) == (1852, 10493)  # 1851.75 -> 1852

    def test_half_rounds_up(self):
        # 30 * 0.15 = 4.5; banker's rounding would give 4
        assert split_commission(30, 0.15) == (5, 25)

    def test_zero_amount(self):
        assert split_commission(0, 0.15) == (0, 0)


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine(fee_rate=0.15)

    def test_defaults_fill_missing_rates(self):
        rates = self.engine.rates_for(None, None)
        assert rates == VehicleRates(minimum_price=5000.0, price_per_km=500.0)

    def test_zero_rates_are_kept(self):
        rates = self.engine.rates_for(0, 0)
        assert rates == VehicleRates(minimum_price=0, price_per_km=0)

    def test_transport_quote_uses_distance(self):
        rates = VehicleRates(minimum_price=5000, price_per_km=750)
        quote = self.engine.quote(rates, ServiceType.TRANSPORT, PORT, CALAVI)

        distance = haversine_km(*PORT, *CALAVI)
        assert quote.estimated_km == pytest.approx(distance)
        assert quote.amount == pytest.approx(max(5000, distance * 750))
        assert quote.platform_fee + quote.driver_share == pytest.approx(quote.amount)

    def test_transport_without_dropoff_pays_minimum(self):
        rates = VehicleRates(minimum_price=8000, price_per_km=500)
        quote = self.engine.quote(rates, ServiceType.TRANSPORT, PORT, None)
        assert quote.amount == 8000
        assert quote.estimated_km is None
        assert quote.platform_fee == 1200
        assert quote.driver_share == 6800

    def test_rental_pays_minimum_even_when_geolocated(self):
        rates = VehicleRates(minimum_price=60000, price_per_km=1000)
        quote = self.engine.quote(rates, ServiceType.DAILY_RENTAL, PORT, CALAVI)
        assert quote.amount == 60000
        assert quote.estimated_km is not None

    @pytest.mark.parametrize("minimum", [0, 5000, 25000])
    @pytest.mark.parametrize("per_km", [0, 500, 1200])
    @pytest.mark.parametrize("dropoff", [PORT, CALAVI, (6.8, 2.1)])
    def test_amount_is_max_of_minimum_and_distance(self, minimum, per_km, dropoff):
        rates = VehicleRates(minimum_price=minimum, price_per_km=per_km)
        quote = self.engine.quote(rates, ServiceType.TRANSPORT, PORT, dropoff)

        distance = haversine_km(*PORT, *dropoff)
        assert quote.amount == max(minimum, distance * per_km)
        assert quote.platform_fee == split_commission(quote.amount, 0.15)[0]
        assert quote.driver_share == quote.amount - quote.platform_fee
