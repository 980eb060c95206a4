"""Composite engine: background, text layers, then the foreground cutout on top."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from PIL import Image

from textbehind.layers import TextLayer
from textbehind.render.fonts import FontResolver
from textbehind.render.surface import (
    MAX_SURFACE_DIMENSION,
    ImageSource,
    Surface,
    check_quality,
    encode_image,
    load_image,
    normalize_format,
)
from textbehind.render.text import render_text_layer

logger = logging.getLogger(__name__)

FONT_SIZE_MODES = ("absolute", "scaled")
_MIME_TYPES = {"png": "image/png", "jpeg": "image/jpeg"}


@dataclass(frozen=True)
class RenderedImage:
    """Encoded output of one render."""

    data: bytes
    width: int
    height: int
    format: str
    quality: int = 90

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self.format]


@dataclass(frozen=True)
class CompositeResult:
    """One successful full render plus everything needed to re-render it.

    ``background`` and ``foreground`` are the decoded planes and ``text_layers``
    the layer snapshot used, so exports at other sizes never need segmentation again.
    """

    background: Image.Image
    foreground: Image.Image
    text_layers: tuple[TextLayer, ...]
    output: RenderedImage
    generation: int = 0
    degraded: bool = False


def transparent_like(image: Image.Image) -> Image.Image:
    """A fully transparent plane the size of ``image``: no occlusion at all."""
    return Image.new("RGBA", image.size, (0, 0, 0, 0))


class Compositor:
    """Renders ordered text layers between a background and a foreground plane.

    Args:
        fonts: Font resolver shared by every render; a fresh one is created if omitted.
        font_size_mode: ``"absolute"`` draws pixel fields as-is on every surface;
            ``"scaled"`` treats them as pixels at ``reference_height`` and scales
            them with the surface height.
        reference_height: Surface height at which scaled pixel fields are 1:1.
        max_dimension: Largest width or height a surface may have.
    """

    def __init__(
        self,
        fonts: FontResolver | None = None,
        font_size_mode: str = "absolute",
        reference_height: int = 600,
        max_dimension: int = MAX_SURFACE_DIMENSION,
    ) -> None:
        if font_size_mode not in FONT_SIZE_MODES:
            raise ValueError(f"Unknown font size mode: {font_size_mode}. Available: {list(FONT_SIZE_MODES)}")
        if reference_height <= 0:
            raise ValueError(f"reference_height must be positive, got {reference_height}")
        self.fonts = fonts or FontResolver()
        self.font_size_mode = font_size_mode
        self.reference_height = reference_height
        self.max_dimension = max_dimension

    def pixel_scale(self, height: int) -> float:
        if self.font_size_mode == "scaled":
            return height / self.reference_height
        return 1.0

    def render(
        self,
        background: ImageSource,
        text_layers: Sequence[TextLayer],
        foreground: ImageSource | None,
        width: int | None = None,
        height: int | None = None,
    ) -> Image.Image:
        """Composite into an RGBA image of ``width`` x ``height``.

        Both planes are decoded before anything is drawn. A missing ``foreground``
        means no occlusion. Width and height default to the background's own size.

        Raises:
            ImageDecodeError: If either plane cannot be decoded.
            SurfaceUnavailable: If the target surface cannot be allocated.
        """
        background_image = load_image(background, "background")
        foreground_image = (
            transparent_like(background_image) if foreground is None else load_image(foreground, "foreground")
        )
        if width is None or height is None:
            width, height = background_image.size

        surface = Surface(width, height, max_dimension=self.max_dimension)
        surface.draw_image(background_image)
        scale = self.pixel_scale(surface.height)
        for layer in text_layers:
            render_text_layer(surface, layer, self.fonts, scale)
        surface.draw_image(foreground_image)
        return surface.image

    def compose(
        self,
        background: ImageSource,
        text_layers: Sequence[TextLayer],
        foreground: ImageSource | None,
        width: int | None = None,
        height: int | None = None,
        format: str = "png",
        quality: int = 90,
    ) -> RenderedImage:
        """Render and encode. The same inputs always produce the same bytes."""
        fmt = normalize_format(format)
        check_quality(quality)
        image = self.render(background, text_layers, foreground, width, height)
        data = encode_image(image, fmt, quality)
        logger.debug(f"Composed {len(text_layers)} text layer(s) at {image.width}x{image.height} as {fmt}")
        return RenderedImage(data=data, width=image.width, height=image.height, format=fmt, quality=quality)

    def compose_result(
        self,
        background: ImageSource,
        text_layers: Sequence[TextLayer],
        foreground: ImageSource | None,
        width: int | None = None,
        height: int | None = None,
        format: str = "png",
        quality: int = 90,
        generation: int = 0,
        degraded: bool = False,
    ) -> CompositeResult:
        """Like :meth:`compose`, but keep the planes and a layer snapshot for later exports."""
        background_image = load_image(background, "background")
        foreground_image = (
            transparent_like(background_image) if foreground is None else load_image(foreground, "foreground")
        )
        layers = tuple(text_layers)
        output = self.compose(background_image, layers, foreground_image, width, height, format, quality)
        return CompositeResult(
            background=background_image,
            foreground=foreground_image,
            text_layers=layers,
            output=output,
            generation=generation,
            degraded=degraded,
        )
