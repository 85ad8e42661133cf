"""Unit tests for haversine distance, path length and rounding."""

import pytest

from src.domain.distance import haversine_km, path_length_km, round_half_up


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(6.37, 2.39, 6.37, 2.39) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)

    def test_symmetric(self):
        assert haversine_km(6.37, 2.39, 6.45, 2.50) == pytest.approx(
            haversine_km(6.45, 2.50, 6.37, 2.39)
        )

    def test_cotonou_to_porto_novo(self):
        # ~27 km as the crow flies
        assert haversine_km(6.3654, 2.4183, 6.4969, 2.6289) == pytest.approx(27.4, abs=0.5)


class TestPathLength:
    def test_tracked_trail_of_three_points(self):
        points = [(6.37, 2.39), (6.40, 2.42), (6.45, 2.50)]
        expected = haversine_km(6.37, 2.39, 6.40, 2.42) + haversine_km(6.40, 2.42, 6.45, 2.50)

        assert path_length_km(points) == pytest.approx(expected)
        assert round_half_up(path_length_km(points), 1) == 15.1

    def test_points_are_used_in_given_order(self):
        forward = [(6.37, 2.39), (6.45, 2.50), (6.40, 2.42)]
        assert path_length_km(forward) != pytest.approx(
            path_length_km(sorted(forward))
        )

    def test_duplicates_are_kept(self):
        assert path_length_km([(6.37, 2.39), (6.37, 2.39)]) == 0.0

    def test_fewer_than_two_points(self):
        assert path_length_km([]) == 0.0
        assert path_length_km([(6.37, 2.39)]) == 0.0


class TestRoundHalfUp:
    def test_half_goes_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.25, 1) == 0.3

    def test_below_half_goes_down(self):
        assert round_half_up(15.146, 1) == 15.1
