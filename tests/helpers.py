"""Helpers for performing tests."""
from collections.abc import Iterable
import builtins
import math

import attrs
import pytest

from srctools import math as vec_mod
from srctools.const import BSPContents, SurfFlags
from srctools.math import AnyVec, FrozenVec

from bspdecomp.records import (
    TEXINFO_NODE, AreaPortal, Brush, BrushSide, BspData, Occluder, OccluderPoly, Plane,
    TexData, TexInfo,
)


__all__ = ['EPSILON', 'assert_vec', 'MapBuilder', 'square']

# In SMD files the maximum precision is this, so it should be a good reference.
EPSILON = 1e-6


def assert_vec(
    vec: vec_mod.VecBase,
    x: float = 0.0, y: float = 0.0, z: float = 0.0,
    msg: object = '',
    tol: float = EPSILON,
) -> None:
    """Asserts that Vec is equal to (x,y,z)."""
    # Don't show in pytest tracebacks.
    __tracebackhide__ = True

    assert builtins.type(vec).__name__ in ('Vec', 'FrozenVec'), vec

    if not math.isclose(vec.x, x, abs_tol=tol):
        failed = 'x'
    elif not math.isclose(vec.y, y, abs_tol=tol):
        failed = 'y'
    elif not math.isclose(vec.z, z, abs_tol=tol):
        failed = 'z'
    else:
        # Success!
        return

    new_msg = f"{vec!r}.{failed} != ({x}, {y}, {z})"
    if msg:
        new_msg += ': ' + str(msg)
    pytest.fail(new_msg)


def square(x1: float, y1: float, x2: float, y2: float, z: float) -> list[FrozenVec]:
    """Produce the corners of a rectangle lying flat on the Z axis."""
    return [
        FrozenVec(x1, y1, z),
        FrozenVec(x2, y1, z),
        FrozenVec(x2, y2, z),
        FrozenVec(x1, y2, z),
    ]


@attrs.define
class MapBuilder:
    """Accumulates record tables, to build small maps."""
    planes: list[Plane] = attrs.Factory(list)
    brushes: list[Brush] = attrs.Factory(list)
    brush_sides: list[BrushSide] = attrs.Factory(list)
    texinfo: list[TexInfo] = attrs.Factory(list)
    texdata: list[TexData] = attrs.Factory(list)
    texture_names: list[str] = attrs.Factory(list)
    vertexes: list[FrozenVec] = attrs.Factory(list)
    occluders: list[Occluder] = attrs.Factory(list)
    occluder_polys: list[OccluderPoly] = attrs.Factory(list)
    occluder_vert_indices: list[int] = attrs.Factory(list)
    areaportals: list[AreaPortal] = attrs.Factory(list)
    clip_portal_verts: list[FrozenVec] = attrs.Factory(list)

    def add_plane(self, normal: AnyVec, dist: float) -> int:
        """Add a plane, reusing an existing identical one."""
        plane = Plane(FrozenVec(normal), dist)
        try:
            return self.planes.index(plane)
        except ValueError:
            self.planes.append(plane)
            return len(self.planes) - 1

    def add_texture(
        self, name: str,
        s_off: AnyVec = (4, 0, 0), t_off: AnyVec = (0, -4, 0),
        s_shift: float = 0.0, t_shift: float = 0.0,
        flags: SurfFlags = SurfFlags.NONE,
        width: int = 512, height: int = 512,
        lightmap: float = 16.0,
    ) -> int:
        """Add a texinfo and texdata for a material, returning the texinfo index."""
        self.texture_names.append(name)
        self.texdata.append(TexData(len(self.texture_names) - 1, width, height))
        self.texinfo.append(TexInfo(
            FrozenVec(s_off), s_shift,
            FrozenVec(t_off), t_shift,
            FrozenVec(1.0 / lightmap, 0, 0), 0.0,
            FrozenVec(0, 1.0 / lightmap, 0), 0.0,
            flags,
            len(self.texdata) - 1,
        ))
        return len(self.texinfo) - 1

    def add_box(
        self,
        mins: AnyVec, maxs: AnyVec,
        contents: BSPContents = BSPContents.SOLID,
        texinfo: int = TEXINFO_NODE,
    ) -> int:
        """Add an axis-aligned box brush, returning the brush index.

        The sides are in the order east, west, north, south, top, bottom.
        """
        mins = FrozenVec(mins)
        maxs = FrozenVec(maxs)
        first_side = len(self.brush_sides)
        for normal, dist in [
            ((1, 0, 0), maxs.x), ((-1, 0, 0), -mins.x),
            ((0, 1, 0), maxs.y), ((0, -1, 0), -mins.y),
            ((0, 0, 1), maxs.z), ((0, 0, -1), -mins.z),
        ]:
            self.brush_sides.append(BrushSide(self.add_plane(normal, dist), texinfo))
        self.brushes.append(Brush(first_side, 6, contents))
        return len(self.brushes) - 1

    def add_occluder(self, polygons: Iterable[tuple[Iterable[AnyVec], AnyVec, float]]) -> int:
        """Add an occluder made of ``(points, normal, dist)`` polygons."""
        first_poly = len(self.occluder_polys)
        for points, normal, dist in polygons:
            first_vert = len(self.occluder_vert_indices)
            count = 0
            for point in points:
                self.occluder_vert_indices.append(len(self.vertexes))
                self.vertexes.append(FrozenVec(point))
                count += 1
            self.occluder_polys.append(OccluderPoly(first_vert, count, self.add_plane(normal, dist)))
        self.occluders.append(Occluder(0, first_poly, len(self.occluder_polys) - first_poly))
        return len(self.occluders) - 1

    def add_areaportal(self, points: Iterable[AnyVec], normal: AnyVec, dist: float) -> int:
        """Add an area portal, returning its index."""
        first_vert = len(self.clip_portal_verts)
        self.clip_portal_verts.extend(map(FrozenVec, points))
        self.areaportals.append(AreaPortal(
            len(self.areaportals), 1,
            first_vert, len(self.clip_portal_verts) - first_vert,
            self.add_plane(normal, dist),
        ))
        return len(self.areaportals) - 1

    def build(self) -> BspData:
        """Produce the immutable map data."""
        return BspData(
            self.planes, self.brushes, self.brush_sides,
            self.texinfo, self.texdata, self.texture_names,
            self.vertexes,
            self.occluders, self.occluder_polys, self.occluder_vert_indices,
            self.areaportals, self.clip_portal_verts,
        )

