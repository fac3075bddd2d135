"""Unit tests for the interception cone."""

from __future__ import annotations

import math

import pytest

from crosswalk.simulation.cone import InterceptionCone, normalize_angle

pytestmark = pytest.mark.unit


def _polar(angle_deg: float, dist: float, origin=(0.0, 0.0)) -> tuple[float, float]:
    a = math.radians(angle_deg)
    return origin[0] + math.cos(a) * dist, origin[1] + math.sin(a) * dist


class TestNormalizeAngle:
    def test_range_is_half_open(self):
        assert normalize_angle(math.pi) == pytest.approx(-math.pi)
        assert normalize_angle(-math.pi) == pytest.approx(-math.pi)

    def test_wraps_multiple_turns(self):
        assert normalize_angle(5 * math.pi / 2) == pytest.approx(math.pi / 2)
        assert normalize_angle(-5 * math.pi / 2) == pytest.approx(-math.pi / 2)


class TestContains:
    def test_default_points_up_the_screen(self):
        cone = InterceptionCone((0.0, 0.0))
        assert cone.contains(0.0, -100.0)
        assert not cone.contains(0.0, 100.0)

    def test_min_radius_excludes_the_origin(self):
        cone = InterceptionCone((0.0, 0.0))
        assert not cone.contains(0.0, 0.0)
        assert not cone.contains(0.0, -5.0)
        assert cone.contains(0.0, -10.0)

    def test_max_radius_is_inclusive(self):
        cone = InterceptionCone((0.0, 0.0), radius=280.0)
        assert cone.contains(0.0, -280.0)
        assert not cone.contains(0.0, -281.0)

    def test_half_width_boundary(self):
        cone = InterceptionCone((0.0, 0.0), width_degrees=60.0, direction=0.0)
        assert cone.contains(*_polar(29.0, 100.0))
        assert cone.contains(*_polar(-29.0, 100.0))
        assert not cone.contains(*_polar(31.0, 100.0))

    def test_wraparound_at_pi(self):
        cone = InterceptionCone((0.0, 0.0), width_degrees=20.0, direction=math.pi)
        assert cone.contains(*_polar(179.0, 100.0))
        assert cone.contains(*_polar(-179.0, 100.0))
        assert not cone.contains(*_polar(160.0, 100.0))

    def test_origin_offset(self):
        origin = (1100.0, 780.0)
        cone = InterceptionCone(origin, direction=math.pi)
        assert cone.contains(*_polar(180.0, 150.0, origin))
        assert not cone.contains(*_polar(0.0, 150.0, origin))


class TestAiming:
    def test_aim_at_sets_direction(self):
        cone = InterceptionCone((100.0, 100.0))
        cone.aim_at(200.0, 100.0)
        assert cone.direction == pytest.approx(0.0)
        cone.aim_at(100.0, 200.0)
        assert cone.direction == pytest.approx(math.pi / 2)

    def test_aim_at_origin_is_ignored(self):
        cone = InterceptionCone((100.0, 100.0), direction=1.0)
        cone.aim_at(100.0, 100.0)
        assert cone.direction == pytest.approx(1.0)

    def test_set_direction_normalises(self):
        cone = InterceptionCone((0.0, 0.0))
        cone.set_direction(3 * math.pi)
        assert -math.pi <= cone.direction < math.pi

    def test_narrowing_excludes_edge_points(self):
        cone = InterceptionCone((0.0, 0.0), direction=0.0)
        point = _polar(25.0, 100.0)
        assert cone.contains(*point)
        cone.set_width(30.0)
        assert cone.width_degrees == pytest.approx(30.0)
        assert not cone.contains(*point)

    def test_negative_width_clamped_to_zero(self):
        cone = InterceptionCone((0.0, 0.0), direction=0.0)
        cone.set_width(-10.0)
        assert cone.width_degrees == 0.0
        assert cone.contains(100.0, 0.0)
        assert not cone.contains(*_polar(1.0, 100.0))
