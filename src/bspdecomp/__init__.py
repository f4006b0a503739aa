"""Reconstruct brush textures and special surfaces from compiled Source maps."""
from bspdecomp.config import TextureSource
from bspdecomp.correlate import Classification, ReallocationData, build_reallocation
from bspdecomp.records import BspData
from bspdecomp.texture import Texture, TextureAxis, build_texture
from bspdecomp.tooltextures import ToolTexture, ToolTextureMatcher
from bspdecomp.winding import Winding


__version__ = '0.1.0'

__all__ = [
    '__version__',
    'BspData', 'Winding',
    'Classification', 'ReallocationData', 'build_reallocation',
    'Texture', 'TextureAxis', 'build_texture',
    'TextureSource', 'ToolTexture', 'ToolTextureMatcher',
]
