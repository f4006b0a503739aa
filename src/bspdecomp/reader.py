"""Read the record tables the decompiler needs from a BSP file.

:py:class:`srctools.bsp.BSP` handles the file header, lump directory and compression.
The lumps are then parsed here, without resolving indices, so brush sides and faces can
still be related back to the planes and texture names they used.
"""
from typing import Union

from collections.abc import Iterator
import os
import struct

from srctools import logger
from srctools.bsp import BSP, BSP_LUMPS, PlaneType
from srctools.const import BSPContents, SurfFlags
from srctools.math import FrozenVec

from bspdecomp.records import (
    TEXINFO_NODE, AreaPortal, Brush, BrushSide, BspData, Occluder, OccluderPoly, Plane,
    TexData, TexInfo,
)


__all__ = [
    'read_bsp', 'read_data',
    'parse_planes', 'parse_brushes', 'parse_brush_sides', 'parse_texinfo',
    'parse_texdata', 'parse_vertexes', 'parse_occlusion', 'parse_areaportals',
    'parse_clip_portal_verts',
]

LOGGER = logger.get_logger(__name__)

ST_PLANE = struct.Struct('<ffffi')
ST_BRUSH = struct.Struct('<iii')
ST_TEXINFO = struct.Struct('<16fii')
ST_TEXDATA = struct.Struct('<3f5i')
ST_TEXDATA_VITAMIN = struct.Struct('<3f3i')
ST_VERTEX = struct.Struct('<3f')
ST_AREAPORTAL = struct.Struct('<4Hi')
ST_INT = struct.Struct('<i')
ST_OCCLUDER_V0 = struct.Struct('<3i6f')
ST_OCCLUDER = struct.Struct('<3i6fi')
ST_OCCLUDER_POLY = struct.Struct('<3i')

# VitaminSource stores the brush side texinfo unsigned.
UNSIGNED_NODE = 0xFFFFFFFF


def _iter_unpack(fmt: struct.Struct, data: bytes, lump: str) -> Iterator[tuple]:
    """Unpack an array of structures, checking the lump is the right size."""
    if len(data) % fmt.size != 0:
        raise ValueError(
            f'{lump} lump is {len(data)} bytes long, '
            f'which is not a multiple of the {fmt.size}-byte structure!'
        )
    return fmt.iter_unpack(data)


def parse_planes(data: bytes) -> list[Plane]:
    """Parse the planes lump."""
    return [
        Plane(FrozenVec(x, y, z), dist, PlaneType(typ))
        for x, y, z, dist, typ in _iter_unpack(ST_PLANE, data, 'Planes')
    ]


def parse_brushes(data: bytes) -> list[Brush]:
    """Parse the brushes lump."""
    return [
        Brush(first_side, side_count, BSPContents(contents))
        for first_side, side_count, contents in _iter_unpack(ST_BRUSH, data, 'Brushes')
    ]


def parse_brush_sides(data: bytes, layout: struct.Struct, vitamin: bool = False) -> list[BrushSide]:
    """Parse the brush sides lump.

    :param layout: The structure for the BSP version, from :py:attr:`BSP.lump_layout`.
    :param vitamin: If set, the structure is the VitaminSource one with an unsigned
        texinfo index and a separate byte for the bevel flag.
    """
    sides = []
    if vitamin:
        for plane_num, texinfo, dispinfo, bevel, _ in _iter_unpack(layout, data, 'Brush sides'):
            if texinfo == UNSIGNED_NODE:
                texinfo = TEXINFO_NODE
            sides.append(BrushSide(plane_num, texinfo, dispinfo, bool(bevel)))
    else:
        # The bevel param should be a bool, but sometimes has other bits set.
        for plane_num, texinfo, dispinfo, bevel in _iter_unpack(layout, data, 'Brush sides'):
            sides.append(BrushSide(plane_num, texinfo, dispinfo, bool(bevel & 1)))
    return sides


def parse_texinfo(data: bytes) -> list[TexInfo]:
    """Parse the texinfo lump."""
    return [
        TexInfo(
            FrozenVec(sx, sy, sz), so,
            FrozenVec(tx, ty, tz), to,
            FrozenVec(l_sx, l_sy, l_sz), l_so,
            FrozenVec(l_tx, l_ty, l_tz), l_to,
            SurfFlags(flags),
            texdata_ind,
        )
        for (
            sx, sy, sz, so, tx, ty, tz, to,
            l_sx, l_sy, l_sz, l_so, l_tx, l_ty, l_tz, l_to,
            flags, texdata_ind,
        ) in _iter_unpack(ST_TEXINFO, data, 'Texinfo')
    ]


def parse_texdata(data: bytes, vitamin: bool = False) -> list[TexData]:
    """Parse the texdata lump.

    VitaminSource leaves out the view width/height, which are always identical to the
    regular width/height.
    """
    if vitamin:
        return [
            TexData(name_ind, width, height, FrozenVec(ref_x, ref_y, ref_z))
            for ref_x, ref_y, ref_z, name_ind, width, height
            in _iter_unpack(ST_TEXDATA_VITAMIN, data, 'Texdata')
        ]
    return [
        TexData(name_ind, width, height, FrozenVec(ref_x, ref_y, ref_z))
        for ref_x, ref_y, ref_z, name_ind, width, height, _, _
        in _iter_unpack(ST_TEXDATA, data, 'Texdata')
    ]


def parse_vertexes(data: bytes) -> list[FrozenVec]:
    """Parse the vertexes lump."""
    return [FrozenVec(x, y, z) for x, y, z in _iter_unpack(ST_VERTEX, data, 'Vertexes')]


def parse_clip_portal_verts(data: bytes) -> list[FrozenVec]:
    """Parse the clip portal vertexes lump."""
    return [FrozenVec(x, y, z) for x, y, z in _iter_unpack(ST_VERTEX, data, 'Clip portal verts')]


def parse_areaportals(data: bytes) -> list[AreaPortal]:
    """Parse the area portals lump."""
    return [
        AreaPortal(portal_key, other_area, first_vert, vert_count, plane_num)
        for portal_key, other_area, first_vert, vert_count, plane_num
        in _iter_unpack(ST_AREAPORTAL, data, 'Areaportals')
    ]


def _read_array(fmt: struct.Struct, data: bytes, offset: int, desc: str) -> tuple[list[tuple], int]:
    """Read a count-prefixed array of structures, returning it and the new offset."""
    try:
        [count] = ST_INT.unpack_from(data, offset)
    except struct.error:
        raise ValueError(f'Occlusion lump ends before the {desc} count!') from None
    offset += ST_INT.size
    if count < 0:
        raise ValueError(f'Occlusion lump has a negative {desc} count ({count})!')
    end = offset + count * fmt.size
    if end > len(data):
        raise ValueError(
            f'Occlusion lump has {count} {desc}s, but is only {len(data)} bytes long!'
        )
    return list(fmt.iter_unpack(data[offset:end])), end


def parse_occlusion(
    data: bytes, version: int = 2,
) -> tuple[list[Occluder], list[OccluderPoly], list[int]]:
    """Parse the occlusion lump.

    This contains three count-prefixed arrays: the occluders, their polygons, then the
    vertex indices used by the polygons. Version 0 occluders do not store an area.

    :returns: The occluders, polygons and vertex indices.
    """
    if not data:
        return [], [], []
    if version not in (0, 1, 2):
        raise ValueError(f'Unknown occlusion lump version {version}!')

    occluders: list[Occluder] = []
    if version == 0:
        raw_occluders, offset = _read_array(ST_OCCLUDER_V0, data, 0, 'occluder')
        for flags, first_poly, poly_count, min_x, min_y, min_z, max_x, max_y, max_z in raw_occluders:
            occluders.append(Occluder(
                flags, first_poly, poly_count,
                FrozenVec(min_x, min_y, min_z), FrozenVec(max_x, max_y, max_z),
            ))
    else:
        raw_occluders, offset = _read_array(ST_OCCLUDER, data, 0, 'occluder')
        for (
            flags, first_poly, poly_count,
            min_x, min_y, min_z, max_x, max_y, max_z,
            area,
        ) in raw_occluders:
            occluders.append(Occluder(
                flags, first_poly, poly_count,
                FrozenVec(min_x, min_y, min_z), FrozenVec(max_x, max_y, max_z),
                area,
            ))

    raw_polys, offset = _read_array(ST_OCCLUDER_POLY, data, offset, 'polygon')
    polys = [
        OccluderPoly(first_vert, vert_count, plane_num)
        for first_vert, vert_count, plane_num in raw_polys
    ]
    raw_indices, offset = _read_array(ST_INT, data, offset, 'vertex index')
    if offset != len(data):
        LOGGER.warning('{} extra bytes at the end of the occlusion lump.', len(data) - offset)
    return occluders, polys, [ind for [ind] in raw_indices]


def read_data(bsp: BSP) -> BspData:
    """Parse the record tables from a loaded BSP."""
    occ_lump = bsp.lumps[BSP_LUMPS.OCCLUSION]
    occluders, occluder_polys, occluder_verts = parse_occlusion(occ_lump.data, occ_lump.version)

    data = BspData(
        planes=parse_planes(bsp.get_lump(BSP_LUMPS.PLANES)),
        brushes=parse_brushes(bsp.get_lump(BSP_LUMPS.BRUSHES)),
        brush_sides=parse_brush_sides(
            bsp.get_lump(BSP_LUMPS.BRUSHSIDES),
            bsp.lump_layout['BRUSHSIDE'],
            bsp.is_vitamin,
        ),
        texinfo=parse_texinfo(bsp.get_lump(BSP_LUMPS.TEXINFO)),
        texdata=parse_texdata(bsp.get_lump(BSP_LUMPS.TEXDATA), bsp.is_vitamin),
        texture_names=bsp.textures,
        vertexes=parse_vertexes(bsp.get_lump(BSP_LUMPS.VERTEXES)),
        occluders=occluders,
        occluder_polys=occluder_polys,
        occluder_vert_indices=occluder_verts,
        areaportals=parse_areaportals(bsp.get_lump(BSP_LUMPS.AREAPORTALS)),
        clip_portal_verts=parse_clip_portal_verts(bsp.get_lump(BSP_LUMPS.CLIPPORTALVERTS)),
    )
    LOGGER.info(
        'Read {} brushes, {} brush sides, {} texinfo, {} occluders and {} area portals.',
        len(data.brushes), len(data.brush_sides), len(data.texinfo),
        len(data.occluders), len(data.areaportals),
    )
    return data


def read_bsp(path: Union[str, 'os.PathLike[str]']) -> BspData:
    """Read a BSP file from disk, then parse the record tables."""
    LOGGER.info('Reading BSP "{}"...', path)
    return read_data(BSP(path))
