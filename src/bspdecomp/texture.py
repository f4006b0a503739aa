"""Reconstruct materials and texture alignment for brush faces.

Compiled maps store the texture projection as a pair of 4D vectors (axis scaled by
texels per unit, plus a shift). These are converted back into the Hammer form of
normalised axes, integer shifts and scales. If that isn't possible, or the face is
being converted to a tool texture, the axes are instead generated from the face
normal, matching Hammer's "align to face".
"""
from typing import Optional

import math

import attrs

from srctools import logger
from srctools.const import SurfFlags
from srctools.math import AnyAngle, AnyVec, FrozenVec

from bspdecomp.config import TextureSource
from bspdecomp.correlate import ReallocationData
from bspdecomp.records import TEXINFO_NODE, BspData, TexData, TexInfo
from bspdecomp.tooltextures import ToolTexture


__all__ = [
    'TextureAxis', 'Texture', 'build_texture',
    'axes_from_normal', 'axes_from_texinfo', 'lightmap_scale',
    'EPS_PERP', 'DEFAULT_LIGHTMAP_SCALE',
]

LOGGER = logger.get_logger(__name__)

#: If the texture plane is closer than this to perpendicular to the face, realign it.
EPS_PERP = 0.02
DEFAULT_LIGHTMAP_SCALE = 16
DEFAULT_SCALE = 0.25

BASE_X = FrozenVec(1, 0, 0)
BASE_Y = FrozenVec(0, 1, 0)
BASE_Z = FrozenVec(0, 0, 1)


@attrs.frozen
class TextureAxis:
    """One axis of a texture projection."""
    axis: FrozenVec
    shift: int = 0
    scale: float = DEFAULT_SCALE

    def __str__(self) -> str:
        return f'[{self.axis} {self.shift}] {self.scale}'


@attrs.frozen
class Texture:
    """The reconstructed material and alignment for a face.

    If the axes could not be determined they are left as None.
    """
    original: str = ToolTexture.SKIP
    #: If set, this replaces the original material.
    override: Optional[str] = None
    uaxis: Optional[TextureAxis] = None
    vaxis: Optional[TextureAxis] = None
    lightmap_scale: int = DEFAULT_LIGHTMAP_SCALE
    data: Optional[TexData] = None

    @property
    def material(self) -> str:
        """The material to use for the face."""
        if self.override is not None:
            return self.override
        return self.original


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves rounding towards positive infinity."""
    return math.floor(value + 0.5)


def _check_vec(vec: AnyVec, desc: str) -> FrozenVec:
    """Replace vectors containing NaN or infinite values with zero."""
    vec = FrozenVec(vec)
    if not (math.isfinite(vec.x) and math.isfinite(vec.y) and math.isfinite(vec.z)):
        LOGGER.warning('Invalid {} vector: {!r}', desc, vec)
        return FrozenVec()
    return vec


def axes_from_normal(normal: AnyVec) -> tuple[TextureAxis, TextureAxis]:
    """Compute texture axes aligned to a face, like Hammer does.

    The reference axis is Y for faces mostly pointing along Z, otherwise Z.
    """
    normal = FrozenVec(normal)
    dot_x = abs(BASE_X.dot(normal))
    dot_y = abs(BASE_Y.dot(normal))
    dot_z = abs(BASE_Z.dot(normal))

    if dot_z > dot_x and dot_z > dot_y:
        vdir = BASE_Y
    else:
        vdir = BASE_Z

    tv1 = normal.cross(vdir).norm()
    tv2 = normal.cross(tv1).norm()
    return TextureAxis(tv1), TextureAxis(tv2)


def axes_from_texinfo(
    texinfo: TexInfo,
    texdata: TexData,
    origin: Optional[AnyVec] = None,
    angles: Optional[AnyAngle] = None,
) -> Optional[tuple[TextureAxis, TextureAxis]]:
    """Convert the texture vectors stored in a texinfo into Hammer's form.

    :param texinfo: The texture info for the face.
    :param texdata: The texture data, used to wrap the shifts.
    :param origin: If the brush was moved to this position, undo that translation.
    :param angles: If the brush was rotated, rotate the axes to match.
    :returns: The axes, or None if the stored vectors are degenerate.
    """
    uaxis = _check_vec(texinfo.s_off, 'texture U')
    vaxis = _check_vec(texinfo.t_off, 'texture V')
    u_len = uaxis.mag()
    v_len = vaxis.mag()
    if u_len == 0.0 or v_len == 0.0:
        return None

    u_scale = 1.0 / u_len
    v_scale = 1.0 / v_len
    uaxis *= u_scale
    vaxis *= v_scale

    u_shift = float(texinfo.s_shift)
    v_shift = float(texinfo.t_shift)
    if not math.isfinite(u_shift):
        u_shift = 0.0
    if not math.isfinite(v_shift):
        v_shift = 0.0

    if origin is not None:
        origin = FrozenVec(origin)
        u_shift -= origin.dot(uaxis) / u_scale
        v_shift -= origin.dot(vaxis) / v_scale

    if angles is not None:
        uaxis = uaxis @ angles
        vaxis = vaxis @ angles

        # Rotating about the origin moves the texture, so compute the shift that causes.
        if origin is not None:
            shift = (-origin) @ angles + origin
        else:
            shift = FrozenVec()
        u_shift -= shift.dot(uaxis) / u_scale
        v_shift -= shift.dot(vaxis) / v_scale

    if texdata.width != 0:
        u_shift = math.fmod(u_shift, texdata.width)
    if texdata.height != 0:
        v_shift = math.fmod(v_shift, texdata.height)

    # Round scales to 4 decimal digits to fix round-off errors (0.25000018 -> 0.25).
    u_scale = _round_half_up(u_scale * 10000) / 10000
    v_scale = _round_half_up(v_scale * 10000) / 10000

    return (
        TextureAxis(uaxis, _round_half_up(u_shift), u_scale),
        TextureAxis(vaxis, _round_half_up(v_shift), v_scale),
    )


def lightmap_scale(texinfo: TexInfo) -> int:
    """Compute the lightmap scale from the lightmap vectors of a texinfo."""
    s_off = _check_vec(texinfo.lightmap_s_off, 'lightmap U')
    t_off = _check_vec(texinfo.lightmap_t_off, 'lightmap V')
    scale = (s_off.mag() + t_off.mag()) / 2.0
    if scale > 0.001:
        return _round_half_up(1.0 / scale)
    return DEFAULT_LIGHTMAP_SCALE


def _is_perpendicular(normal: FrozenVec, uaxis: TextureAxis, vaxis: TextureAxis) -> bool:
    """Check if the texture plane is perpendicular to the face, which is invalid."""
    tex_norm = uaxis.axis.cross(vaxis.axis)
    return abs(normal.dot(tex_norm)) < EPS_PERP


def _align_to_face(texture: Texture, normal: Optional[AnyVec]) -> Texture:
    """Replace the axes of a texture with ones aligned to the face, if the normal is known."""
    if normal is None:
        return texture
    uaxis, vaxis = axes_from_normal(normal)
    return attrs.evolve(texture, uaxis=uaxis, vaxis=vaxis)


def _fix_tool_texture(
    data: BspData,
    source: TextureSource,
    realloc: ReallocationData,
    name: Optional[str],
    texinfo: Optional[TexInfo],
    brush_index: int,
    brushside_index: int,
) -> Optional[str]:
    """Pick a tool texture for the brush side, if it needs one."""
    if brush_index == -1 or brushside_index == -1:
        return None
    if not 0 <= brush_index < len(data.brushes):
        LOGGER.warning('Invalid brush index: {}', brush_index)
        return None
    if brushside_index < 0:
        LOGGER.warning('Invalid brush side index: {}', brushside_index)
        return None
    brush = data.brushes[brush_index]

    # Occluders have no content flag, so use the brushes matched geometrically.
    # Areaportals have one, so the matcher handles them.
    if realloc.is_occluder_brush(brush_index):
        if realloc.is_occluder_brush_side(brush_index, brushside_index - brush.first_side):
            return ToolTexture.OCCLUDER
        return ToolTexture.NODRAW

    return source.matcher.fix_tool_texture(
        name, brush.contents,
        texinfo.flags if texinfo is not None else None,
    )


def build_texture(
    data: BspData,
    source: TextureSource,
    realloc: ReallocationData,
    *,
    normal: Optional[AnyVec],
    texinfo_index: int = TEXINFO_NODE,
    brush_index: int = -1,
    brushside_index: int = -1,
    origin: Optional[AnyVec] = None,
    angles: Optional[AnyAngle] = None,
    fix_textures: bool = False,
) -> Texture:
    """Reconstruct the material and alignment for a brush side.

    :param data: The map data.
    :param source: Texture fixing options.
    :param realloc: The occluder/areaportal matches for the map.
    :param normal: The normal of the face, used to align textures. If None,
        textures can only use the stored alignment.
    :param texinfo_index: The texinfo used by the side, or -1 if it has none.
    :param brush_index: The brush the side is part of, required for tool textures.
    :param brushside_index: The index of the side in the brush side table.
    :param origin: The origin of the brush entity, if it needs to be translated.
    :param angles: The rotation of the brush entity, if it needs to be rotated.
    :param fix_textures: Allow tool textures to be fixed for this side.
    """
    if normal is not None:
        normal = _check_vec(normal, 'face normal')
        if not normal:
            normal = None
    allow_fix = source.fix_tool_textures and fix_textures

    if texinfo_index == TEXINFO_NODE:
        # Some tool textures in CS:S and HL2:DM have no texinfo, but can still be fixed.
        if allow_fix:
            tool_tex = _fix_tool_texture(data, source, realloc, None, None, brush_index, brushside_index)
            if tool_tex is not None:
                return _align_to_face(Texture(override=tool_tex), normal)
        return Texture()

    if not 0 <= texinfo_index < len(data.texinfo):
        LOGGER.warning('Invalid texinfo index: {}', texinfo_index)
        return _align_to_face(Texture(), normal)
    texinfo = data.texinfo[texinfo_index]

    if not 0 <= texinfo.texdata_index < len(data.texdata):
        LOGGER.warning('Invalid texdata index: {}', texinfo.texdata_index)
        return _align_to_face(Texture(), normal)
    texdata = data.texdata[texinfo.texdata_index]

    if 0 <= texdata.name_index < len(data.texture_names):
        original = data.texture_names[texdata.name_index]
    else:
        LOGGER.warning('Invalid texname index: {}', texdata.name_index)
        original = ToolTexture.SKIP

    override = source.fixed_names.get(texdata.name_index)
    uses_fixed_texture = False
    if allow_fix:
        tool_tex = _fix_tool_texture(
            data, source, realloc,
            override if override is not None else original,
            texinfo, brush_index, brushside_index,
        )
        if tool_tex is not None:
            override = tool_tex
            uses_fixed_texture = True

    lm_scale = lightmap_scale(texinfo)

    if uses_fixed_texture or texinfo.flags & (SurfFlags.SKYBOX_2D | SurfFlags.SKYBOX_3D):
        return _align_to_face(
            Texture(original, override, lightmap_scale=lm_scale, data=texdata),
            normal,
        )

    axes = axes_from_texinfo(texinfo, texdata, origin, angles)
    if axes is None:
        LOGGER.warning('Degenerate texture vectors in texinfo {}', texinfo_index)
    elif normal is not None and _is_perpendicular(normal, *axes):
        axes = None
    if axes is None:
        return _align_to_face(
            Texture(original, override, lightmap_scale=lm_scale, data=texdata),
            normal,
        )

    uaxis, vaxis = axes
    return Texture(original, override, uaxis, vaxis, lm_scale, texdata)
