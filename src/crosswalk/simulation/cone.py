"""InterceptionCone — the protest sign's field of attention.

An angular sector anchored at the player's fixed position.  A point is
inside when its distance from the origin lies in ``[min_radius, radius]``
and its bearing is within half the cone width of the aim direction.
Bearings are compared after normalising the difference into ``[-pi, pi)``,
so a cone aimed straight left (pi) still contains points just below the
negative x-axis.

The cone holds only its aim direction and width; there is no history.
Direction comes from pointer input, width from stamina feedback.
"""

from __future__ import annotations

import math


def normalize_angle(angle: float) -> float:
    """Wrap *angle* (radians) into ``[-pi, pi)``."""
    return (angle + math.pi) % (2 * math.pi) - math.pi


class InterceptionCone:
    def __init__(
        self,
        origin: tuple[float, float],
        radius: float = 280.0,
        width_degrees: float = 60.0,
        direction: float = -math.pi / 2,
        min_radius: float = 10.0,
    ) -> None:
        self.origin = origin
        self.radius = radius
        self.min_radius = min_radius
        self._direction = normalize_angle(direction)
        self._width = math.radians(width_degrees)

    @property
    def direction(self) -> float:
        return self._direction

    @property
    def width_degrees(self) -> float:
        return math.degrees(self._width)

    def set_direction(self, radians: float) -> None:
        self._direction = normalize_angle(radians)

    def set_width(self, degrees: float) -> None:
        self._width = math.radians(max(0.0, degrees))

    def aim_at(self, x: float, y: float) -> None:
        """Point the cone at a world position (pointer drag)."""
        ox, oy = self.origin
        if x == ox and y == oy:
            return
        self.set_direction(math.atan2(y - oy, x - ox))

    def contains(self, x: float, y: float) -> bool:
        ox, oy = self.origin
        dx = x - ox
        dy = y - oy
        dist = math.hypot(dx, dy)
        if dist < self.min_radius or dist > self.radius:
            return False
        diff = normalize_angle(math.atan2(dy, dx) - self._direction)
        return abs(diff) <= self._width / 2
