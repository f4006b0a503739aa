"""Convex polygons used to compare special surfaces against brush sides.

See `polylib.cpp <https://github.com/ValveSoftware/source-sdk-2013/blob/0565403b153dfcde602f6f58d8f4d13483696a13/src/utils/common/polylib.cpp>`_
for the algorithms.
"""
from typing import ClassVar

from collections.abc import Iterable, Iterator

import attrs

from srctools import logger
from srctools.math import AnyVec, FrozenVec

from bspdecomp.records import AreaPortal, BspData, OccluderPoly


__all__ = ['Winding', 'ON_EPSILON', 'MAX_COORD']

LOGGER = logger.get_logger(__name__)

#: Points closer than this to a clipping plane count as lying on it.
ON_EPSILON = 0.01
#: Half the size of the initial winding for a plane. This must be larger than any map.
MAX_COORD = 65536.0

SIDE_FRONT = 0
SIDE_BACK = 1
SIDE_ON = 2

BASE_X = FrozenVec(1, 0, 0)
BASE_Z = FrozenVec(0, 0, 1)


def _to_frozen(points: Iterable[AnyVec]) -> tuple[FrozenVec, ...]:
    return tuple(FrozenVec(point) for point in points)


@attrs.frozen
class Winding:
    """An ordered loop of coplanar points, forming a convex polygon.

    Windings are immutable, clipping produces a new winding. Fewer than 3 points is
    a degenerate winding, which has no area.
    """
    EMPTY: ClassVar['Winding']

    points: tuple[FrozenVec, ...] = attrs.field(default=(), converter=_to_frozen)

    @classmethod
    def from_points(cls, points: Iterable[AnyVec]) -> 'Winding':
        """Construct a winding from a list of points. Degenerate lists produce an empty winding."""
        wind = cls(points)
        if len(wind.points) < 3:
            return cls.EMPTY
        return wind

    @classmethod
    def from_plane(cls, normal: AnyVec, dist: float) -> 'Winding':
        """Produce a huge square lying on the specified plane."""
        normal = FrozenVec(normal)
        # Pick the world axis closest to the normal, then use another for "up".
        if abs(normal.z) >= abs(normal.x) and abs(normal.z) >= abs(normal.y):
            vup = BASE_X
        else:
            vup = BASE_Z
        vup = (vup - normal * vup.dot(normal)).norm()
        vright = vup.cross(normal)

        org = normal * dist
        vup *= MAX_COORD
        vright *= MAX_COORD
        return cls((
            org - vright + vup,
            org + vright + vup,
            org + vright - vup,
            org - vright - vup,
        ))

    @classmethod
    def from_brush_side(cls, data: BspData, brush_index: int, side_index: int) -> 'Winding':
        """Compute the polygon for a brush side.

        This is the plane of the side, clipped by the planes of all other sides in the brush.
        """
        if not 0 <= brush_index < len(data.brushes):
            LOGGER.warning('Invalid brush index: {}', brush_index)
            return cls.EMPTY
        if not 0 <= side_index < len(data.brush_sides):
            LOGGER.warning('Invalid brush side index: {}', side_index)
            return cls.EMPTY
        side = data.brush_sides[side_index]
        plane = data.side_plane(side)
        if plane is None:
            LOGGER.warning('Invalid plane index {} for brush side {}', side.plane_index, side_index)
            return cls.EMPTY
        wind = cls.from_plane(plane.normal, plane.dist)
        for other_ind, other in data.iter_brush_sides(brush_index):
            if other_ind == side_index or other.plane_index == side.plane_index:
                continue
            other_plane = data.side_plane(other)
            if other_plane is None:
                continue
            wind = wind.clip_plane(other_plane.normal, other_plane.dist)
            if wind.is_empty:
                break
        return wind

    @classmethod
    def from_occluder(cls, data: BspData, poly: OccluderPoly) -> 'Winding':
        """Build the polygon for an occluder face."""
        points = []
        for i in range(poly.first_vertex, poly.first_vertex + poly.vertex_count):
            if not 0 <= i < len(data.occluder_vert_indices):
                LOGGER.warning('Invalid occluder vertex index: {}', i)
                return cls.EMPTY
            vert = data.occluder_vert_indices[i]
            if not 0 <= vert < len(data.vertexes):
                LOGGER.warning('Invalid vertex {} in occluder vertex index {}', vert, i)
                return cls.EMPTY
            points.append(data.vertexes[vert])
        return cls.from_points(points)

    @classmethod
    def from_areaportal(cls, data: BspData, portal: AreaPortal) -> 'Winding':
        """Build the polygon for an area portal."""
        start = portal.first_clip_vert
        end = start + portal.clip_vert_count
        if start < 0 or end > len(data.clip_portal_verts):
            LOGGER.warning('Invalid clip portal vertices: {}-{}', start, end)
            return cls.EMPTY
        return cls.from_points(data.clip_portal_verts[start:end])

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[FrozenVec]:
        return iter(self.points)

    @property
    def is_empty(self) -> bool:
        """Check if this winding is degenerate."""
        return len(self.points) < 3

    def center(self) -> FrozenVec:
        """Return the average of all the points."""
        if not self.points:
            return FrozenVec()
        total = FrozenVec()
        for point in self.points:
            total += point
        return total / len(self.points)

    def _fan_cross(self) -> FrozenVec:
        """Sum the cross products of the triangle fan around the first point."""
        first = self.points[0]
        total = FrozenVec()
        for a, b in zip(self.points[1:], self.points[2:]):
            total += (a - first).cross(b - first)
        return total

    def normal(self) -> FrozenVec:
        """Compute the facing direction from the winding order.

        Like the compile tools, points are expected to be clockwise when viewed from the front.
        """
        if self.is_empty:
            return FrozenVec()
        return (-self._fan_cross()).norm()

    def bbox(self) -> tuple[FrozenVec, FrozenVec]:
        """Return the bounding box of this winding. Empty windings have a zero-size box."""
        if not self.points:
            return FrozenVec(), FrozenVec()
        return FrozenVec.bbox(self.points)

    def area(self) -> float:
        """Compute the area of the polygon. Degenerate windings have zero area."""
        if self.is_empty:
            return 0.0
        return self._fan_cross().mag() * 0.5

    def clip_plane(self, normal: AnyVec, dist: float, epsilon: float = ON_EPSILON) -> 'Winding':
        """Clip the winding by a plane, keeping the part behind it.

        Points within `epsilon` of the plane are kept. If the winding is entirely
        behind the plane it is returned unchanged.
        """
        if self.is_empty:
            return Winding.EMPTY
        normal = FrozenVec(normal)

        dists = [normal.dot(point) - dist for point in self.points]
        sides = []
        for off in dists:
            if off > epsilon:
                sides.append(SIDE_FRONT)
            elif off < -epsilon:
                sides.append(SIDE_BACK)
            else:
                sides.append(SIDE_ON)

        if SIDE_FRONT not in sides:
            return self
        if SIDE_BACK not in sides:
            return Winding.EMPTY

        new_points: list[FrozenVec] = []
        count = len(self.points)
        for i, point in enumerate(self.points):
            j = (i + 1) % count
            if sides[i] != SIDE_FRONT:
                new_points.append(point)
            if sides[i] == SIDE_ON or sides[j] == SIDE_ON or sides[i] == sides[j]:
                continue
            # The edge crosses the plane, split it.
            frac = dists[i] / (dists[i] - dists[j])
            new_points.append(point + (self.points[j] - point) * frac)

        return Winding.from_points(new_points)

    def clip(self, other: 'Winding', normal: AnyVec) -> 'Winding':
        """Clip this winding by the edges of another coplanar winding.

        Each edge of `other` defines a plane perpendicular to the shared plane, given
        by `normal`. The result is the overlapping region of the two polygons.
        """
        if self.is_empty or other.is_empty:
            return Winding.EMPTY
        normal = FrozenVec(normal)
        center = other.center()
        result = self
        count = len(other.points)
        for i, start in enumerate(other.points):
            edge = other.points[(i + 1) % count] - start
            if edge.mag() < ON_EPSILON:
                continue
            edge_norm = edge.cross(normal).norm()
            edge_dist = edge_norm.dot(start)
            # Flip so the inside of the other winding is behind the edge.
            if edge_norm.dot(center) - edge_dist > 0:
                edge_norm = -edge_norm
                edge_dist = -edge_dist
            result = result.clip_plane(edge_norm, edge_dist)
            if result.is_empty:
                return Winding.EMPTY
        return result

Winding.EMPTY = Winding()
