"""Write reconstructed textures into :py:mod:`srctools.vmf` brushes."""
from typing import Optional

from collections.abc import Mapping
import math

from srctools import logger
from srctools.vmf import VMF, Side, Solid, UVAxis

from bspdecomp.records import BspData
from bspdecomp.texture import Texture, TextureAxis


__all__ = ['texture_uv', 'apply_texture', 'side_from_plane', 'brush_solid']

LOGGER = logger.get_logger(__name__)


def _finite(value: float, desc: str) -> float:
    if math.isfinite(value):
        return value
    LOGGER.warning('Invalid {} value {}, writing 0.', desc, value)
    return 0.0


def texture_uv(axis: TextureAxis) -> UVAxis:
    """Convert a texture axis into the VMF form."""
    return UVAxis(
        _finite(axis.axis.x, 'texture axis'),
        _finite(axis.axis.y, 'texture axis'),
        _finite(axis.axis.z, 'texture axis'),
        offset=axis.shift,
        scale=_finite(axis.scale, 'texture scale'),
    )


def apply_texture(side: Side, texture: Texture) -> None:
    """Set the material, alignment and lightmap scale of a side.

    If the texture has no axes, the side's current alignment is kept.
    """
    side.mat = texture.material
    if texture.uaxis is not None:
        side.uaxis = texture_uv(texture.uaxis)
    if texture.vaxis is not None:
        side.vaxis = texture_uv(texture.vaxis)
    side.lightmap = texture.lightmap_scale


def side_from_plane(vmf: VMF, data: BspData, side_index: int) -> Optional[Side]:
    """Create a VMF side lying on the plane of a brush side.

    Returns None if the side has an invalid plane.
    """
    plane = data.side_plane(data.brush_sides[side_index])
    if plane is None:
        LOGGER.warning('Brush side {} has invalid plane, skipping.', side_index)
        return None
    return Side.from_plane(vmf, plane.normal * plane.dist, plane.normal)


def brush_solid(
    vmf: VMF,
    data: BspData,
    brush_index: int,
    textures: Mapping[int, Texture],
) -> Solid:
    """Build a VMF brush from the planes of a brush.

    :param textures: The texture for each brush side index. Sides without one use nodraw.
    """
    solid = Solid(vmf)
    for side_ind, side in data.iter_brush_sides(brush_index):
        if side.is_bevel:
            continue
        vmf_side = side_from_plane(vmf, data, side_ind)
        if vmf_side is None:
            continue
        try:
            texture = textures[side_ind]
        except KeyError:
            pass
        else:
            apply_texture(vmf_side, texture)
        solid.sides.append(vmf_side)
    return solid
