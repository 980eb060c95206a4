"""Export controller: re-render a composite (or the raw upload) at a target size."""

import logging
import os
import os.path as osp
from collections.abc import Iterable
from dataclasses import dataclass

from tqdm import tqdm

from textbehind.errors import ExportTargetUnavailable, SurfaceUnavailable
from textbehind.presets import PLATFORM_PRESETS, PlatformPreset, get_preset
from textbehind.render.compositor import CompositeResult, Compositor
from textbehind.render.surface import (
    MAX_SURFACE_DIMENSION,
    ImageSource,
    Surface,
    check_quality,
    load_image,
    normalize_format,
)

logger = logging.getLogger(__name__)

DIRECT_DOWNLOAD_STEM = "processed-image"


@dataclass(frozen=True)
class ExportedImage:
    filename: str
    data: bytes
    width: int
    height: int
    format: str

    def save(self, directory: str) -> str:
        """Write the image into ``directory`` under its download name and return the path."""
        os.makedirs(directory, exist_ok=True)
        path = osp.join(directory, self.filename)
        with open(path, "wb") as f:
            f.write(self.data)
        logger.info(f"Saved {self.filename} ({self.width}x{self.height}) to {directory}")
        return path


def export_filename(preset: PlatformPreset | None, format: str) -> str:
    stem = preset.slug if preset is not None else DIRECT_DOWNLOAD_STEM
    return f"{stem}.{format}"


class ExportController:
    """Produces downloadable images from a composite or a raw image.

    Each call allocates its own surface, so concurrent exports never share a
    render target and a failed export leaves every other export untouched.
    """

    def __init__(self, compositor: Compositor | None = None, max_dimension: int = MAX_SURFACE_DIMENSION) -> None:
        self.compositor = compositor or Compositor(max_dimension=max_dimension)
        self.max_dimension = max_dimension

    def export(
        self,
        source: CompositeResult | ImageSource,
        preset: PlatformPreset | str | None = None,
        format: str = "png",
        quality: int = 90,
    ) -> ExportedImage:
        """Render ``source`` at the preset's size, or at its natural size without one.

        A ``CompositeResult`` is re-composed from its retained planes and layer
        snapshot, so text stays sharp at any size. Any other source is decoded and
        stretched into the target. The source is never modified.

        Raises:
            ExportTargetUnavailable: If the target size is invalid or cannot be allocated.
            ImageDecodeError: If a raw source cannot be decoded.
            KeyError: If ``preset`` names no known preset.
            ValueError: On an unsupported format or quality.
        """
        fmt = normalize_format(format)
        check_quality(quality)
        if isinstance(preset, str):
            preset = get_preset(preset)

        if isinstance(source, CompositeResult):
            natural_size = source.output.size
        else:
            image = load_image(source, "source")
            natural_size = image.size
        width, height = preset.size if preset is not None else natural_size
        self._check_target(width, height)

        try:
            if isinstance(source, CompositeResult):
                data = self.compositor.compose(
                    source.background,
                    source.text_layers,
                    source.foreground,
                    width,
                    height,
                    format=fmt,
                    quality=quality,
                ).data
            else:
                surface = Surface(width, height, max_dimension=self.max_dimension)
                surface.draw_image(image)
                data = surface.encode(fmt, quality)
        except SurfaceUnavailable as e:
            raise ExportTargetUnavailable(width, height, e.reason) from e

        exported = ExportedImage(
            filename=export_filename(preset, fmt), data=data, width=width, height=height, format=fmt
        )
        logger.info(f"Exported {exported.filename} at {width}x{height}")
        return exported

    def export_presets(
        self,
        source: CompositeResult | ImageSource,
        presets: Iterable[PlatformPreset | str] | None = None,
        format: str = "png",
        quality: int = 90,
    ) -> dict[str, ExportedImage]:
        """Export ``source`` once per preset (all presets by default), keyed by preset id."""
        resolved = [get_preset(p) if isinstance(p, str) else p for p in (presets or PLATFORM_PRESETS)]
        results = {}
        for preset in tqdm(resolved, desc="Exporting presets"):
            results[preset.id] = self.export(source, preset, format=format, quality=quality)
        return results

    def _check_target(self, width: int, height: int) -> None:
        for value in (width, height):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ExportTargetUnavailable(width, height, "dimensions must be integers")
        if width <= 0 or height <= 0:
            raise ExportTargetUnavailable(width, height, "dimensions must be positive")
        if width > self.max_dimension or height > self.max_dimension:
            raise ExportTargetUnavailable(width, height, f"dimensions exceed the {self.max_dimension}px limit")
