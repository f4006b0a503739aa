"""Match occluders and area portals back to the brushes they were compiled from.

The BSP format stores occluder and area portal polygons separately from the brushes,
without recording which brush side produced them. We recover the association by
finding the brush side on the same plane which overlaps the polygon the most.
This is a heuristic - a mismatch just produces the wrong tool texture.
"""
from typing import Optional

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
import math

import attrs

from srctools import logger
from srctools.math import AnyVec

from bspdecomp.records import AreaPortal, BspData, OccluderPoly
from bspdecomp.winding import Winding


__all__ = [
    'Classification', 'ReallocationData', 'SideMatch',
    'overlap_fraction', 'occluder_overlap', 'areaportal_overlap',
    'sides_by_plane', 'find_best_side', 'build_reallocation',
]

LOGGER = logger.get_logger(__name__)

#: Overlap fractions above 1 + this are the result of bad geometry, not a real match.
OVERLAP_TOLERANCE = 1e-4


class Classification(Enum):
    """What kind of special surface a brush or brush side was reconstructed as."""
    NONE = 'none'
    OCCLUDER_BRUSH = 'occluder_brush'
    OCCLUDER_BRUSH_SIDE = 'occluder_brush_side'
    AREAPORTAL = 'areaportal'


def _freeze_map(value: Mapping[int, object]) -> Mapping[int, object]:
    return MappingProxyType(dict(value))


@attrs.frozen(eq=False)
class ReallocationData:
    """The brushes and sides which were matched to special surfaces.

    This is built once per map by :py:func:`build_reallocation()`, then only read from.
    Brush sides are identified by the brush index and the offset of the side inside
    that brush.
    """
    occluder_brushes: frozenset[int] = attrs.field(default=frozenset(), converter=frozenset)
    occluder_sides: frozenset[tuple[int, int]] = attrs.field(default=frozenset(), converter=frozenset)
    areaportal_brushes: frozenset[int] = attrs.field(default=frozenset(), converter=frozenset)
    #: For each occluder index, the brushes that were matched to its polygons.
    occluder_mapping: Mapping[int, tuple[int, ...]] = attrs.field(factory=dict, converter=_freeze_map)
    #: For each area portal index, the brush it was matched to.
    areaportal_mapping: Mapping[int, int] = attrs.field(factory=dict, converter=_freeze_map)

    def is_occluder_brush(self, brush_index: int) -> bool:
        """Check if this brush produced an occluder polygon."""
        return brush_index in self.occluder_brushes

    def is_occluder_brush_side(self, brush_index: int, side_offset: int) -> bool:
        """Check if this specific brush side produced an occluder polygon."""
        return (brush_index, side_offset) in self.occluder_sides

    def is_areaportal_brush(self, brush_index: int) -> bool:
        """Check if this brush produced an area portal."""
        return brush_index in self.areaportal_brushes

    def classify(self, brush_index: int, side_offset: int) -> Classification:
        """Determine the classification of a brush side."""
        if self.is_occluder_brush(brush_index):
            if self.is_occluder_brush_side(brush_index, side_offset):
                return Classification.OCCLUDER_BRUSH_SIDE
            return Classification.OCCLUDER_BRUSH
        if self.is_areaportal_brush(brush_index):
            return Classification.AREAPORTAL
        return Classification.NONE


@attrs.frozen
class SideMatch:
    """The brush side best matching a special surface."""
    brush: int
    side: int  #: Index into the brush side table.
    side_offset: int  #: Offset of the side relative to the first side of the brush.
    fraction: float


def overlap_fraction(surface: Winding, side: Winding, normal: AnyVec) -> float:
    """Compute how much of `surface` is covered by `side`, from 0 to 1.

    Both must lie on the plane with the given normal. Degenerate polygons or results
    outside the valid range produce zero.
    """
    area = surface.area()
    if not math.isfinite(area) or area <= 0.0:
        return 0.0
    frac = surface.clip(side, normal).area() / area
    if not math.isfinite(frac) or frac <= 0.0 or frac > 1.0 + OVERLAP_TOLERANCE:
        return 0.0
    return frac


def _valid_side(data: BspData, brush_index: int, side_index: int) -> bool:
    """Check both indices refer to real records, warning if not."""
    if not 0 <= brush_index < len(data.brushes):
        LOGGER.warning('Invalid brush index: {}', brush_index)
        return False
    if not 0 <= side_index < len(data.brush_sides):
        LOGGER.warning('Invalid brush side index: {}', side_index)
        return False
    return True


def _side_overlap(data: BspData, surface: Winding, brush_index: int, side_index: int) -> float:
    plane = data.side_plane(data.brush_sides[side_index])
    if plane is None:
        return 0.0
    side_wind = Winding.from_brush_side(data, brush_index, side_index)
    return overlap_fraction(surface, side_wind, plane.normal)


def occluder_overlap(data: BspData, poly: OccluderPoly, brush_index: int, side_index: int) -> float:
    """Compute the fraction of an occluder polygon covered by a brush side."""
    if not _valid_side(data, brush_index, side_index):
        return 0.0
    # Different planes can't match, no need to do any clipping.
    if poly.plane_index != data.brush_sides[side_index].plane_index:
        return 0.0
    return _side_overlap(data, Winding.from_occluder(data, poly), brush_index, side_index)


def areaportal_overlap(data: BspData, portal: AreaPortal, brush_index: int, side_index: int) -> float:
    """Compute the fraction of an area portal covered by a brush side."""
    if not _valid_side(data, brush_index, side_index):
        return 0.0
    if portal.plane_index != data.brush_sides[side_index].plane_index:
        return 0.0
    return _side_overlap(data, Winding.from_areaportal(data, portal), brush_index, side_index)


def sides_by_plane(data: BspData) -> dict[int, list[tuple[int, int]]]:
    """Group brush sides by their plane index.

    Each value is a list of ``(brush_index, side_index)`` pairs, in ascending brush
    then side order. This fixes the order candidates are tried in.
    """
    result: dict[int, list[tuple[int, int]]] = {}
    for brush_ind in range(len(data.brushes)):
        for side_ind, side in data.iter_brush_sides(brush_ind):
            result.setdefault(side.plane_index, []).append((brush_ind, side_ind))
    return result


def find_best_side(
    data: BspData,
    surface: Winding,
    plane_index: int,
    candidates: Optional[Mapping[int, list[tuple[int, int]]]] = None,
    side_windings: Optional[dict[int, Winding]] = None,
) -> Optional[SideMatch]:
    """Find the brush side which overlaps this surface the most.

    :param data: The map data.
    :param surface: The polygon of the occluder or area portal.
    :param plane_index: The plane the surface lies on. Only sides on this plane are checked.
    :param candidates: The result of :py:func:`sides_by_plane()`, to avoid recomputing it.
    :param side_windings: If provided, brush side windings are cached in this dict.
    :returns: The best match, or None if no side overlaps at all. If multiple sides
        have the same overlap, the first is returned.
    """
    if surface.is_empty:
        return None
    if candidates is None:
        candidates = sides_by_plane(data)
    if not 0 <= plane_index < len(data.planes):
        LOGGER.warning('Invalid plane index: {}', plane_index)
        return None
    plane = data.planes[plane_index]

    best: Optional[SideMatch] = None
    for brush_ind, side_ind in candidates.get(plane_index, ()):
        if side_windings is not None:
            try:
                side_wind = side_windings[side_ind]
            except KeyError:
                side_wind = side_windings[side_ind] = Winding.from_brush_side(data, brush_ind, side_ind)
        else:
            side_wind = Winding.from_brush_side(data, brush_ind, side_ind)

        frac = overlap_fraction(surface, side_wind, plane.normal)
        if frac > 0.0 and (best is None or frac > best.fraction):
            best = SideMatch(
                brush_ind, side_ind,
                side_ind - data.brushes[brush_ind].first_side,
                frac,
            )
    return best


def build_reallocation(data: BspData) -> ReallocationData:
    """Match every occluder polygon and area portal to a brush side.

    Surfaces which do not overlap any brush are left out.
    """
    candidates = sides_by_plane(data)
    side_windings: dict[int, Winding] = {}

    occluder_brushes: set[int] = set()
    occluder_sides: set[tuple[int, int]] = set()
    occluder_mapping: dict[int, tuple[int, ...]] = {}
    poly_count = poly_matched = 0

    for occ_ind, occluder in enumerate(data.occluders):
        brushes: list[int] = []
        for poly_ind in occluder.poly_indices:
            if not 0 <= poly_ind < len(data.occluder_polys):
                LOGGER.warning('Occluder {} has invalid polygon index {}', occ_ind, poly_ind)
                continue
            poly = data.occluder_polys[poly_ind]
            poly_count += 1
            match = find_best_side(
                data, Winding.from_occluder(data, poly), poly.plane_index,
                candidates, side_windings,
            )
            if match is None:
                LOGGER.debug('No brush side found for occluder {}, polygon {}', occ_ind, poly_ind)
                continue
            poly_matched += 1
            occluder_brushes.add(match.brush)
            occluder_sides.add((match.brush, match.side_offset))
            if match.brush not in brushes:
                brushes.append(match.brush)
        if brushes:
            occluder_mapping[occ_ind] = tuple(brushes)

    areaportal_brushes: set[int] = set()
    areaportal_mapping: dict[int, int] = {}
    for portal_ind, portal in enumerate(data.areaportals):
        if portal.clip_vert_count == 0:
            # The first portal is always a blank placeholder.
            continue
        match = find_best_side(
            data, Winding.from_areaportal(data, portal), portal.plane_index,
            candidates, side_windings,
        )
        if match is None:
            LOGGER.debug('No brush side found for area portal {}', portal_ind)
            continue
        areaportal_brushes.add(match.brush)
        areaportal_mapping[portal_ind] = match.brush

    LOGGER.info(
        'Matched {}/{} occluder polygons and {}/{} area portals to brushes.',
        poly_matched, poly_count,
        len(areaportal_mapping), sum(1 for portal in data.areaportals if portal.clip_vert_count),
    )
    return ReallocationData(
        occluder_brushes, occluder_sides, areaportal_brushes,
        occluder_mapping, areaportal_mapping,
    )
