"""Resolve a text layer's style attributes into concrete paint parameters.

Resolution is pure: it reads the layer and returns new values. Scoping the
resulting paint to a single layer draw is the renderer's job.
"""

from dataclasses import dataclass

import numpy as np
from PIL import ImageColor

from textbehind.layers import TextLayer

Color = tuple[int, int, int, int]

GRADIENT_OFFSETS = (0.0, 0.5, 1.0)


def parse_color(value: str) -> Color:
    return ImageColor.getcolor(value, "RGBA")  # type: ignore[return-value]


@dataclass(frozen=True)
class SolidFill:
    color: Color

    def sample(self, local_x: np.ndarray) -> np.ndarray:
        """Straight RGBA (0-255, float32) at each local x coordinate."""
        out = np.empty(local_x.shape + (4,), dtype=np.float32)
        out[...] = self.color
        return out


@dataclass(frozen=True)
class LinearGradientFill:
    """Horizontal gradient in the layer's local frame, running from ``x0`` to ``x1``.

    Outside the span the end colours are extended. A zero-length span paints nothing.
    """

    x0: float
    x1: float
    stops: tuple[tuple[float, Color], ...]

    def sample(self, local_x: np.ndarray) -> np.ndarray:
        out = np.zeros(local_x.shape + (4,), dtype=np.float32)
        span = self.x1 - self.x0
        if span <= 0:
            return out
        t = np.clip((local_x - self.x0) / span, 0.0, 1.0)
        offsets = [offset for offset, _ in self.stops]
        for channel in range(4):
            values = [color[channel] for _, color in self.stops]
            out[..., channel] = np.interp(t, offsets, values)
        return out


Fill = SolidFill | LinearGradientFill


@dataclass(frozen=True)
class ShadowStyle:
    """Drop shadow in surface pixels; offsets ignore the layer transform."""

    color: Color
    blur: float
    offset_x: float
    offset_y: float

    @property
    def sigma(self) -> float:
        return self.blur / 2.0


@dataclass(frozen=True)
class ResolvedStyle:
    fill: Fill
    shadow: ShadowStyle | None
    alpha: float
    blur: float


def resolve_fill(layer: TextLayer, text_width: float) -> Fill:
    """Solid colour, or a 3-stop gradient spanning the glyph run centred on the anchor."""
    if not layer.gradient:
        return SolidFill(parse_color(layer.color))
    colors = layer.gradient_colors
    stops = tuple(
        (offset, parse_color(value))
        for offset, value in zip(GRADIENT_OFFSETS, (colors.start, colors.middle, colors.end))
    )
    half = text_width / 2.0
    return LinearGradientFill(x0=-half, x1=half, stops=stops)


def resolve_shadow(layer: TextLayer, pixel_scale: float = 1.0) -> ShadowStyle | None:
    if not layer.shadow:
        return None
    color = parse_color(layer.shadow_color)
    blur = layer.shadow_blur * pixel_scale
    dx = layer.shadow_offset.x * pixel_scale
    dy = layer.shadow_offset.y * pixel_scale
    # A transparent shadow, or one with neither blur nor offset, is invisible.
    if color[3] == 0 or (blur == 0 and dx == 0 and dy == 0):
        return None
    return ShadowStyle(color=color, blur=blur, offset_x=dx, offset_y=dy)


def resolve_style(layer: TextLayer, text_width: float, pixel_scale: float = 1.0) -> ResolvedStyle:
    """Resolve fill, shadow, global alpha and blur for one draw of ``layer``.

    Args:
        layer: The layer to resolve. It is not modified.
        text_width: Advance width of the glyph run in the layer's local frame.
        pixel_scale: Factor applied to pixel-valued effects (shadow, blur).
    """
    return ResolvedStyle(
        fill=resolve_fill(layer, text_width),
        shadow=resolve_shadow(layer, pixel_scale),
        alpha=float(layer.opacity),
        blur=layer.blur * pixel_scale,
    )
