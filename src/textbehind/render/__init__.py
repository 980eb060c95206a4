"""Raster rendering: geometry, styling, fonts, text layers and compositing."""

from textbehind.render.compositor import CompositeResult, Compositor, RenderedImage
from textbehind.render.fonts import FontResolver
from textbehind.render.surface import Surface, encode_image, load_image
from textbehind.render.text import render_text_layer

__all__ = [
    "CompositeResult",
    "Compositor",
    "FontResolver",
    "RenderedImage",
    "Surface",
    "encode_image",
    "load_image",
    "render_text_layer",
]
