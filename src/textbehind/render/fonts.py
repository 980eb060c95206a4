"""Font lookup with graceful fallback.

A family name is resolved, in order, through the configured family -> file
mapping, Pillow's own search of the system font directories, the configured
default font file and finally Pillow's bundled default font. A missing font is
never an error.
"""

import logging
from pathlib import Path

from PIL import ImageFont

logger = logging.getLogger(__name__)

Font = ImageFont.FreeTypeFont | ImageFont.ImageFont


class FontResolver:
    """Resolves ``(family, size)`` pairs to Pillow fonts, caching the results."""

    def __init__(
        self,
        fonts: dict[str, str] | None = None,
        default_font: str | None = None,
        font_dirs: list[str] | None = None,
    ) -> None:
        self.fonts: dict[str, str] = {}
        # Files found in font_dirs are addressable by their file stem, e.g. "Roboto-Bold".
        for fonts_dir in font_dirs or []:
            for path in iter_font_files(Path(fonts_dir)):
                self.fonts.setdefault(path.stem, str(path))
        self.fonts.update(fonts or {})
        self.default_font = default_font
        self._cache: dict[tuple[str, int], Font] = {}
        self._warned: set[str] = set()

    def get(self, family: str, size: int) -> Font:
        size = max(1, int(size))
        key = (family, size)
        if key not in self._cache:
            self._cache[key] = self._load(family, size)
        return self._cache[key]

    def _candidates(self, family: str) -> list[str]:
        candidates = []
        if family in self.fonts:
            candidates.append(self.fonts[family])
        if family:
            candidates.append(family)
            compact = family.replace(" ", "")
            if compact != family:
                candidates.append(compact)
        if self.default_font:
            candidates.append(self.default_font)
        return candidates

    def _load(self, family: str, size: int) -> Font:
        for candidate in self._candidates(family):
            try:
                return ImageFont.truetype(candidate, size)
            except OSError:
                continue
        if family not in self._warned:
            logger.warning(f"Font '{family}' is not available, using the bundled default font")
            self._warned.add(family)
        return ImageFont.load_default(size)


def iter_font_files(fonts_dir: Path) -> list[Path]:
    """Font files (.ttf / .otf / .ttc) under ``fonts_dir``; a missing directory is empty."""
    if not fonts_dir.exists():
        return []
    return sorted(p for p in fonts_dir.rglob("*") if p.suffix.lower() in {".ttf", ".otf", ".ttc"})
