"""Platform export presets: named output sizes for social media targets."""

import re
from dataclasses import dataclass


def kebab_case(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


@dataclass(frozen=True)
class PlatformPreset:
    id: str
    name: str
    width: int
    height: int
    description: str = ""

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def slug(self) -> str:
        """Kebab-case form of the display name, used for export file names."""
        return kebab_case(self.name)


PLATFORM_PRESETS: tuple[PlatformPreset, ...] = (
    PlatformPreset("instagram-square", "Instagram Square", 1080, 1080, "Perfect for Instagram feed posts"),
    PlatformPreset("instagram-portrait", "Instagram Portrait", 1080, 1350, "Optimal for Instagram portrait posts"),
    PlatformPreset("instagram-landscape", "Instagram Landscape", 1080, 608, "Best for Instagram landscape posts"),
    PlatformPreset("youtube-thumbnail", "YouTube Thumbnail", 1280, 720, "Standard YouTube thumbnail size"),
    PlatformPreset("youtube-banner", "YouTube Banner", 2560, 1440, "YouTube channel banner size"),
)

_PRESETS_BY_KEY = {p.id: p for p in PLATFORM_PRESETS} | {p.slug: p for p in PLATFORM_PRESETS}


def get_preset(key: str) -> PlatformPreset:
    """Look up a preset by id or by display name (case-insensitive).

    Raises:
        KeyError: If no preset matches.
    """
    preset = _PRESETS_BY_KEY.get(kebab_case(key))
    if preset is None:
        available = [p.id for p in PLATFORM_PRESETS]
        raise KeyError(f"Unknown preset: {key}. Available: {available}")
    return preset
