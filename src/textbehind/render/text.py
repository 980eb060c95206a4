"""Text layer renderer.

A layer is drawn in isolation: its glyphs are rasterised into an alpha mask,
warped by the layer matrix into a private premultiplied buffer covering only
the layer's bounding box, styled (fill, blur, shadow, opacity) there and then
alpha-composited onto the surface. Nothing a layer sets up can leak into the
next layer's draw.
"""

import logging
import math

import cv2
import numpy as np
from PIL import Image, ImageDraw

from textbehind.layers import TextLayer
from textbehind.render.fonts import Font, FontResolver
from textbehind.render.geometry import is_degenerate, layer_matrix, transform_points, translation
from textbehind.render.style import LinearGradientFill, ResolvedStyle, ShadowStyle, resolve_style
from textbehind.render.surface import Surface

logger = logging.getLogger(__name__)

MAX_OVERSAMPLE = 8.0
_MASK_PADDING = 2
_WHITESPACE = str.maketrans({"\n": " ", "\r": " ", "\t": " "})


def single_line(text: str) -> str:
    """Text is drawn on one line; line breaks and tabs become spaces."""
    return text.replace("\r\n", " ").translate(_WHITESPACE)


def measure_text(font: Font, text: str) -> tuple[float, tuple[int, int, int, int]]:
    """Advance width and ink box of ``text`` relative to its middle/middle anchor."""
    return float(font.getlength(text)), font.getbbox(text, anchor="mm")


def oversample_factor(matrix: np.ndarray) -> float:
    """How much larger than nominal to rasterise glyphs so the warp never upsamples."""
    stretch = float(np.linalg.norm(matrix[:2, :2], 2))
    return min(max(stretch, 1.0), MAX_OVERSAMPLE)


def render_text_layer(
    surface: Surface,
    layer: TextLayer,
    fonts: FontResolver,
    pixel_scale: float = 1.0,
) -> bool:
    """Draw one text layer onto ``surface``.

    Args:
        surface: Target surface. Only the layer's bounding box is touched.
        layer: Layer to draw. Position is resolved against the surface size.
        fonts: Font resolver used to look up the layer's family.
        pixel_scale: Multiplier for the pixel-valued fields (font size, blur, shadow).

    Returns:
        False when nothing was drawn (empty text, collapsed transform, or a
        layer lying completely off the surface), True otherwise.
    """
    text = single_line(layer.text)
    if not text:
        return False

    width, height = surface.size
    matrix = layer_matrix(layer, width, height)
    if is_degenerate(matrix):
        logger.debug(f"Layer {layer.id} has a non-invertible transform, skipping")
        return False

    font_px = layer.font_size * pixel_scale
    factor = oversample_factor(matrix)
    raster_size = max(1, round(font_px * factor))
    font = fonts.get(layer.font_family, raster_size)
    # The rasterised size is an integer, so the effective factor can differ from the requested one.
    factor = raster_size / font_px

    advance, (left, top, right, bottom) = measure_text(font, text)
    style = resolve_style(layer, advance / factor, pixel_scale)

    mask, origin = _rasterize(text, font, (left, top, right, bottom))
    # mask pixel -> local layer frame -> surface pixels
    mask_to_surface = matrix @ np.diag([1.0 / factor, 1.0 / factor, 1.0]) @ translation(-origin[0], -origin[1])

    box = _buffer_box(mask, mask_to_surface, style, (width, height))
    if box is None:
        return False
    x0, y0, x1, y1 = box
    buffer_w, buffer_h = x1 - x0, y1 - y0

    # Pixel indices address pixel centres in OpenCV and pixel corners in Pillow's drawing space.
    to_buffer = translation(-x0 - 0.5, -y0 - 0.5) @ mask_to_surface @ translation(0.5, 0.5)
    coverage = cv2.warpAffine(
        mask,
        to_buffer[:2],
        (buffer_w, buffer_h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=0,
    )

    glyphs = _paint(coverage, style, matrix, (x0, y0))
    if style.blur > 0:
        glyphs = cv2.GaussianBlur(glyphs, (0, 0), sigmaX=style.blur, borderType=cv2.BORDER_CONSTANT)

    out = glyphs * style.alpha
    if style.shadow is not None:
        shadow = _shadow(glyphs[..., 3], style.shadow, style.alpha)
        out = out + shadow * (1.0 - out[..., 3:4])

    _composite_clipped(surface, out, (x0, y0))
    return True


def _rasterize(text: str, font: Font, bbox: tuple[int, int, int, int]) -> tuple[np.ndarray, tuple[float, float]]:
    """Glyph coverage mask (float32, 0-1) and the anchor position inside it."""
    left, top, right, bottom = bbox
    pad = _MASK_PADDING
    mask_w = max(1, right - left) + 2 * pad
    mask_h = max(1, bottom - top) + 2 * pad
    origin = (float(pad - left), float(pad - top))
    mask = Image.new("L", (mask_w, mask_h), 0)
    ImageDraw.Draw(mask).text(origin, text, font=font, fill=255, anchor="mm")
    return np.asarray(mask, dtype=np.float32) / 255.0, origin


def _buffer_box(
    mask: np.ndarray,
    mask_to_surface: np.ndarray,
    style: ResolvedStyle,
    surface_size: tuple[int, int],
) -> tuple[int, int, int, int] | None:
    """Integer box (x0, y0, x1, y1) holding the glyphs and every effect around them."""
    mask_h, mask_w = mask.shape
    corners = transform_points(mask_to_surface, [(0, 0), (mask_w, 0), (mask_w, mask_h), (0, mask_h)])
    gx0, gy0 = corners.min(axis=0)
    gx1, gy1 = corners.max(axis=0)

    blur_margin = 3.0 * style.blur
    bx0, by0, bx1, by1 = gx0 - blur_margin, gy0 - blur_margin, gx1 + blur_margin, gy1 + blur_margin
    if style.shadow is not None:
        shadow_margin = blur_margin + 3.0 * style.shadow.sigma
        sx, sy = style.shadow.offset_x, style.shadow.offset_y
        bx0 = min(bx0, gx0 + sx - shadow_margin)
        by0 = min(by0, gy0 + sy - shadow_margin)
        bx1 = max(bx1, gx1 + sx + shadow_margin)
        by1 = max(by1, gy1 + sy + shadow_margin)

    # Off-surface content within the effect margin can still blur onto the surface.
    width, height = surface_size
    reach = blur_margin + (3.0 * style.shadow.sigma if style.shadow is not None else 0.0)
    x0 = max(math.floor(bx0), math.floor(-reach))
    y0 = max(math.floor(by0), math.floor(-reach))
    x1 = min(math.ceil(bx1), math.ceil(width + reach))
    y1 = min(math.ceil(by1), math.ceil(height + reach))
    if x1 <= max(x0, 0) or y1 <= max(y0, 0) or x0 >= width or y0 >= height:
        return None
    return x0, y0, x1, y1


def _paint(coverage: np.ndarray, style: ResolvedStyle, matrix: np.ndarray, origin: tuple[int, int]) -> np.ndarray:
    """Premultiplied RGBA (0-1) of the fill masked by glyph coverage."""
    if isinstance(style.fill, LinearGradientFill):
        buffer_h, buffer_w = coverage.shape
        xs, ys = np.meshgrid(
            np.arange(buffer_w, dtype=np.float64) + origin[0] + 0.5,
            np.arange(buffer_h, dtype=np.float64) + origin[1] + 0.5,
        )
        inverse = np.linalg.inv(matrix)
        local_x = inverse[0, 0] * xs + inverse[0, 1] * ys + inverse[0, 2]
        color = style.fill.sample(local_x) / 255.0
    else:
        color = style.fill.sample(np.zeros(coverage.shape, dtype=np.float32)) / 255.0

    alpha = coverage * color[..., 3]
    out = np.empty(coverage.shape + (4,), dtype=np.float32)
    out[..., :3] = color[..., :3] * alpha[..., None]
    out[..., 3] = alpha
    return out


def _shadow(alpha: np.ndarray, shadow: ShadowStyle, opacity: float) -> np.ndarray:
    """Premultiplied shadow cast by ``alpha``, offset in surface pixels."""
    if shadow.offset_x or shadow.offset_y:
        buffer_h, buffer_w = alpha.shape
        shift = np.float32([[1, 0, shadow.offset_x], [0, 1, shadow.offset_y]])
        alpha = cv2.warpAffine(
            alpha, shift, (buffer_w, buffer_h), flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT, borderValue=0
        )
    if shadow.sigma > 0:
        alpha = cv2.GaussianBlur(alpha, (0, 0), sigmaX=shadow.sigma, borderType=cv2.BORDER_CONSTANT)

    r, g, b, a = (c / 255.0 for c in shadow.color)
    shadow_alpha = alpha * (a * opacity)
    out = np.empty(alpha.shape + (4,), dtype=np.float32)
    out[..., 0] = r * shadow_alpha
    out[..., 1] = g * shadow_alpha
    out[..., 2] = b * shadow_alpha
    out[..., 3] = shadow_alpha
    return out


def _composite_clipped(surface: Surface, rgba: np.ndarray, origin: tuple[int, int]) -> None:
    x0, y0 = origin
    buffer_h, buffer_w = rgba.shape[:2]
    left, top = max(0, -x0), max(0, -y0)
    right = min(buffer_w, surface.width - x0)
    bottom = min(buffer_h, surface.height - y0)
    if right <= left or bottom <= top:
        return
    surface.draw_premultiplied(rgba[top:bottom, left:right], (x0 + left, y0 + top))
