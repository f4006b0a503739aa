"""Index-preserving record tables for the lumps the decompiler consumes.

Unlike :py:mod:`srctools.bsp`, which resolves cross-references into object graphs,
these records keep the raw indices. Several decompiler steps depend on them - occluders
are matched to brush sides by plane *index*, and the texture name fixes are keyed by the
texture name index.
"""
from typing import Optional

from collections.abc import Iterator, Sequence

import attrs

from srctools.bsp import PlaneType
from srctools.const import BSPContents, SurfFlags
from srctools.math import FrozenVec


__all__ = [
    'TEXINFO_NODE',
    'Plane', 'Brush', 'BrushSide', 'TexInfo', 'TexData',
    'Occluder', 'OccluderPoly', 'AreaPortal',
    'BspData',
]

#: Texinfo index used by brush sides and faces without texture information.
TEXINFO_NODE = -1


@attrs.frozen
class Plane:
    """A plane from the planes lump. Brush sides point outward along the normal."""
    normal: FrozenVec
    dist: float
    type: PlaneType = PlaneType.ANY_Z


@attrs.frozen
class Brush:
    """A brush, referencing a contiguous run of brush sides."""
    first_side: int
    side_count: int
    contents: BSPContents = BSPContents.SOLID

    @property
    def side_indices(self) -> range:
        """The indices of the sides of this brush, in the brush side table."""
        return range(self.first_side, self.first_side + self.side_count)


@attrs.frozen
class BrushSide:
    """A side of a brush."""
    plane_index: int
    texinfo_index: int = TEXINFO_NODE
    dispinfo: int = -1
    is_bevel: bool = False


@attrs.frozen
class TexInfo:
    """Texture positioning info.

    The ``s``/``t`` values are the texture vectors in texels, the ``lightmap_`` values
    are the equivalent in luxels.
    """
    s_off: FrozenVec
    s_shift: float
    t_off: FrozenVec
    t_shift: float
    lightmap_s_off: FrozenVec = FrozenVec()
    lightmap_s_shift: float = 0.0
    lightmap_t_off: FrozenVec = FrozenVec()
    lightmap_t_shift: float = 0.0
    flags: SurfFlags = SurfFlags.NONE
    texdata_index: int = 0


@attrs.frozen
class TexData:
    """Additional texture information, shared between texinfo."""
    name_index: int
    width: int = 0
    height: int = 0
    reflectivity: FrozenVec = FrozenVec(0.2, 0.2, 0.2)


@attrs.frozen
class Occluder:
    """An occluder entity, built from one or more polygons."""
    flags: int
    first_poly: int
    poly_count: int
    mins: FrozenVec = FrozenVec()
    maxs: FrozenVec = FrozenVec()
    #: The area this occluder is in. Only present in version 1+ of the lump.
    area: int = -1

    @property
    def poly_indices(self) -> range:
        """The indices of the polygons making up this occluder."""
        return range(self.first_poly, self.first_poly + self.poly_count)


@attrs.frozen
class OccluderPoly:
    """A single occluder polygon. The vertices are indexes into the occluder vertex index list."""
    first_vertex: int
    vertex_count: int
    plane_index: int


@attrs.frozen
class AreaPortal:
    """A portal between two areas. The vertices are stored in the clip portal vertex lump."""
    portal_key: int
    other_area: int
    first_clip_vert: int
    clip_vert_count: int
    plane_index: int


def _tup(value: Sequence[object]) -> tuple:
    return tuple(value)


@attrs.frozen
class BspData:
    """The record tables for a single map.

    This is built once, then only read from.
    """
    planes: Sequence[Plane] = attrs.field(factory=tuple, converter=_tup)
    brushes: Sequence[Brush] = attrs.field(factory=tuple, converter=_tup)
    brush_sides: Sequence[BrushSide] = attrs.field(factory=tuple, converter=_tup)
    texinfo: Sequence[TexInfo] = attrs.field(factory=tuple, converter=_tup)
    texdata: Sequence[TexData] = attrs.field(factory=tuple, converter=_tup)
    texture_names: Sequence[str] = attrs.field(factory=tuple, converter=_tup)
    vertexes: Sequence[FrozenVec] = attrs.field(factory=tuple, converter=_tup)
    occluders: Sequence[Occluder] = attrs.field(factory=tuple, converter=_tup)
    occluder_polys: Sequence[OccluderPoly] = attrs.field(factory=tuple, converter=_tup)
    #: Indexes into `vertexes`, referenced by the occluder polygons.
    occluder_vert_indices: Sequence[int] = attrs.field(factory=tuple, converter=_tup)
    areaportals: Sequence[AreaPortal] = attrs.field(factory=tuple, converter=_tup)
    clip_portal_verts: Sequence[FrozenVec] = attrs.field(factory=tuple, converter=_tup)

    def iter_brush_sides(self, brush_index: int) -> Iterator[tuple[int, BrushSide]]:
        """Yield ``(side_index, side)`` pairs for the specified brush."""
        brush = self.brushes[brush_index]
        for side_ind in brush.side_indices:
            # Brushes running off the end of the table are truncated.
            if not 0 <= side_ind < len(self.brush_sides):
                break
            yield side_ind, self.brush_sides[side_ind]

    def side_plane(self, side: BrushSide) -> Optional[Plane]:
        """Return the plane for this side, or None if the index is invalid."""
        if 0 <= side.plane_index < len(self.planes):
            return self.planes[side.plane_index]
        return None
