"""Options controlling how textures are reconstructed."""
from collections.abc import Mapping
from types import MappingProxyType

import attrs

from srctools import conv_bool, logger
from srctools.keyvalues import Keyvalues

from bspdecomp.tooltextures import ToolTextureMatcher


__all__ = ['TextureSource']

LOGGER = logger.get_logger(__name__)


def _freeze_names(value: Mapping[int, str]) -> Mapping[int, str]:
    return MappingProxyType(dict(value))


@attrs.frozen(eq=False)
class TextureSource:
    """Settings for texture reconstruction.

    This can be parsed from a keyvalues block:

    .. code-block:: text

        "Textures"
            {
            "FixToolTextures" "1"
            "FixSky" "1"
            "FixedNames"
                {
                "12" "dev/dev_measuregeneric01"
                }
            }
    """
    #: Replacement material names, keyed by the index into the texture name table.
    fixed_names: Mapping[int, str] = attrs.field(factory=dict, converter=_freeze_names)
    #: If enabled, faces may be replaced by tool textures.
    fix_tool_textures: bool = True
    matcher: ToolTextureMatcher = attrs.Factory(ToolTextureMatcher)

    @classmethod
    def parse(cls, kv: Keyvalues) -> 'TextureSource':
        """Parse settings from a keyvalues block."""
        fix_tool = True
        fix_sky = True
        fixed_names: dict[int, str] = {}
        for child in kv:
            if child.name == 'fixtooltextures':
                fix_tool = _parse_bool(child)
            elif child.name == 'fixsky':
                fix_sky = _parse_bool(child)
            elif child.name == 'fixednames':
                for name_kv in child:
                    try:
                        index = int(name_kv.real_name)
                    except ValueError:
                        raise ValueError(
                            f'Fixed texture name key "{name_kv.real_name}" is not a texture index!'
                        ) from None
                    fixed_names[index] = name_kv.value
            else:
                LOGGER.warning('Unknown texture option "{}"!', child.real_name)
        return cls(fixed_names, fix_tool, ToolTextureMatcher(fix_sky=fix_sky))


def _parse_bool(kv: Keyvalues) -> bool:
    """Parse a boolean option, using the usual keyvalue conventions."""
    result = conv_bool(kv.value, None)
    if result is None:
        raise ValueError(f'Option "{kv.real_name}" has invalid boolean value "{kv.value}"!')
    return result
