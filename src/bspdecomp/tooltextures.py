"""Tool textures, and the logic to pick one for a face from its flags.

VBSP replaces or strips many tool materials while compiling, but the brush contents
and surface flags they set survive. These let us put a suitable material back.
"""
from typing import Final, Optional

import attrs

from srctools.const import BSPContents, SurfFlags


__all__ = ['ToolTexture', 'ToolTextureMatcher']


class ToolTexture:
    """Names of the tool materials the decompiler can produce."""
    SKIP: Final = 'tools/toolsskip'
    NODRAW: Final = 'tools/toolsnodraw'
    OCCLUDER: Final = 'tools/toolsoccluder'
    AREAPORTAL: Final = 'tools/toolsareaportal'
    SKYBOX: Final = 'tools/toolsskybox'
    SKYBOX_2D: Final = 'tools/toolsskybox2d'
    HINT: Final = 'tools/toolshint'
    TRIGGER: Final = 'tools/toolstrigger'
    CLIP: Final = 'tools/toolsclip'
    PLAYER_CLIP: Final = 'tools/toolsplayerclip'
    NPC_CLIP: Final = 'tools/toolsnpcclip'
    ORIGIN: Final = 'tools/toolsorigin'
    INVISIBLE_LADDER: Final = 'tools/toolsinvisibleladder'


@attrs.frozen
class ToolTextureMatcher:
    """Chooses tool textures based on brush contents and surface flags.

    :ivar fix_sky: If disabled, sky faces are left alone.
    """
    fix_sky: bool = True

    def fix_tool_texture(
        self,
        name: Optional[str],
        contents: BSPContents,
        surf_flags: Optional[SurfFlags],
    ) -> Optional[str]:
        """Pick a tool texture for a face, or return None to keep the original.

        :param name: The original material, or None if the face has no texture info.
        :param contents: The contents of the brush the face is part of.
        :param surf_flags: The surface flags of the face, or None if it has no texture info.
        """
        if surf_flags is None:
            surf_flags = SurfFlags.NONE

        if self.fix_sky:
            if SurfFlags.SKYBOX_2D in surf_flags:
                return ToolTexture.SKYBOX_2D
            if SurfFlags.SKYBOX_3D in surf_flags:
                return ToolTexture.SKYBOX

        # Areaportal brushes keep their content flag, so they don't need to be matched
        # geometrically like occluders.
        if BSPContents.AREAPORTAL in contents:
            return ToolTexture.AREAPORTAL

        if BSPContents.PLAYER_CLIP in contents:
            if BSPContents.NPC_CLIP in contents:
                return ToolTexture.CLIP
            return ToolTexture.PLAYER_CLIP
        if BSPContents.NPC_CLIP in contents:
            return ToolTexture.NPC_CLIP

        if BSPContents.ORIGIN in contents:
            return ToolTexture.ORIGIN
        if BSPContents.LADDER in contents and SurfFlags.NODRAW in surf_flags:
            return ToolTexture.INVISIBLE_LADDER

        if SurfFlags.HINT in surf_flags:
            return ToolTexture.HINT
        if SurfFlags.SKIP in surf_flags:
            return ToolTexture.SKIP
        if SurfFlags.TRIGGER in surf_flags:
            return ToolTexture.TRIGGER

        # Other nodraw tool materials (blocklight, blockbullets etc) are kept if we know them.
        if SurfFlags.NODRAW in surf_flags and (name is None or not _is_tool_name(name)):
            return ToolTexture.NODRAW
        return None


def _is_tool_name(name: str) -> bool:
    return name.casefold().replace('\\', '/').startswith('tools/')
