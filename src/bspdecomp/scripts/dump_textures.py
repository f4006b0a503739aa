"""Reconstruct the texture of every brush side in a BSP, and print or export the result.

Occluders and area portals are first matched to their brushes, so their sides get the
correct tool textures.
"""
from typing import Optional
from pathlib import Path
import argparse
import sys

from srctools import logger
from srctools.keyvalues import Keyvalues
from srctools.math import FrozenVec
from srctools.vmf import VMF

from bspdecomp.config import TextureSource
from bspdecomp.correlate import ReallocationData, build_reallocation
from bspdecomp.reader import read_bsp
from bspdecomp.records import BspData
from bspdecomp.texture import Texture, build_texture
from bspdecomp.vmfout import brush_solid
from bspdecomp.winding import Winding


def load_config(filename: Optional[str]) -> TextureSource:
    """Load the texture options, or use the defaults."""
    if not filename:
        return TextureSource()
    with open(filename) as f:
        kv = Keyvalues.parse(f, filename)
    return TextureSource.parse(kv.find_key('Textures', or_blank=True))


def _bbox_text(windings: list[Winding]) -> str:
    points = [point for wind in windings for point in wind]
    if not points:
        return '(empty)'
    mins, maxs = FrozenVec.bbox(points)
    return f'({mins}) - ({maxs})'


def describe_surfaces(data: BspData, realloc: ReallocationData) -> list[str]:
    """Describe the occluders and area portals which were matched to brushes."""
    lines = []
    for occ_ind, brushes in sorted(realloc.occluder_mapping.items()):
        occluder = data.occluders[occ_ind]
        windings = [
            Winding.from_occluder(data, data.occluder_polys[poly_ind])
            for poly_ind in occluder.poly_indices
            if 0 <= poly_ind < len(data.occluder_polys)
        ]
        lines.append(
            f'occluder {occ_ind}: brushes {", ".join(map(str, brushes))}, '
            f'bounds {_bbox_text(windings)}'
        )
    for portal_ind, brush in sorted(realloc.areaportal_mapping.items()):
        wind = Winding.from_areaportal(data, data.areaportals[portal_ind])
        mins, maxs = wind.bbox()
        lines.append(
            f'areaportal {portal_ind}: brush {brush}, '
            f'facing ({wind.normal()}), bounds ({mins}) - ({maxs})'
        )
    return lines


def main(args: Optional[list[str]] = None) -> None:
    """Main script."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "bsp",
        help="The map to read.",
    )
    parser.add_argument(
        "-c", "--config",
        help="Keyvalues file with a \"Textures\" block of options.",
        default="",
    )
    parser.add_argument(
        "-o", "--vmf",
        help="If set, export the brushes to this VMF instead of printing.",
        default="",
    )
    parser.add_argument(
        "--no-fix",
        help="Keep the original materials on tool brushes.",
        action="store_true",
    )

    result = parser.parse_args(args)
    log = logger.init_logging(main_logger='bspdecomp')

    source = load_config(result.config)
    data = read_bsp(Path(result.bsp))
    realloc = build_reallocation(data)

    vmf = VMF() if result.vmf else None
    if vmf is None:
        for line in describe_surfaces(data, realloc):
            print(line)

    for brush_ind in range(len(data.brushes)):
        first_side = data.brushes[brush_ind].first_side
        textures: dict[int, Texture] = {}
        for side_ind, side in data.iter_brush_sides(brush_ind):
            plane = data.side_plane(side)
            textures[side_ind] = texture = build_texture(
                data, source, realloc,
                normal=plane.normal if plane is not None else None,
                texinfo_index=side.texinfo_index,
                brush_index=brush_ind,
                brushside_index=side_ind,
                fix_textures=not result.no_fix,
            )
            if vmf is None:
                kind = realloc.classify(brush_ind, side_ind - first_side)
                print(
                    f'{brush_ind}:{side_ind - first_side} [{kind.value}] '
                    f'{texture.material} u={texture.uaxis} v={texture.vaxis} '
                    f'lm={texture.lightmap_scale}'
                )
        if vmf is not None:
            solid = brush_solid(vmf, data, brush_ind, textures)
            if len(solid.sides) >= 4:
                vmf.add_brush(solid)

    if vmf is not None:
        log.info('Writing {}...', result.vmf)
        with open(result.vmf, 'w') as f:
            vmf.export(f)


if __name__ == '__main__':
    main(sys.argv[1:])
