"""Drawing targets, image decoding and encoding."""

import io
import logging
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from textbehind.errors import ImageDecodeError, SurfaceUnavailable

logger = logging.getLogger(__name__)

MAX_SURFACE_DIMENSION = 16384
FORMATS = ("png", "jpeg")
_FORMAT_ALIASES = {"jpg": "jpeg"}
_PIL_FORMATS = {"png": "PNG", "jpeg": "JPEG"}

ImageSource = Image.Image | bytes | bytearray | str | Path


class Surface:
    """A private RGBA render target. Everything drawn is alpha-composited in call order."""

    def __init__(self, width: int, height: int, max_dimension: int = MAX_SURFACE_DIMENSION) -> None:
        if isinstance(width, bool) or isinstance(height, bool):
            raise SurfaceUnavailable(width, height, "dimensions must be integers")
        if not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
            raise SurfaceUnavailable(width, height, "dimensions must be integers")
        if width <= 0 or height <= 0:
            raise SurfaceUnavailable(width, height, "dimensions must be positive")
        if width > max_dimension or height > max_dimension:
            raise SurfaceUnavailable(width, height, f"dimensions exceed the {max_dimension}px limit")
        try:
            self._image = Image.new("RGBA", (int(width), int(height)), (0, 0, 0, 0))
        except (MemoryError, ValueError) as e:
            raise SurfaceUnavailable(width, height, str(e)) from e

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def size(self) -> tuple[int, int]:
        return self._image.size

    @property
    def image(self) -> Image.Image:
        return self._image

    def draw_image(self, image: Image.Image) -> None:
        """Stretch ``image`` over the whole surface and composite it on top."""
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        if image.size != self.size:
            image = image.resize(self.size, Image.Resampling.LANCZOS)
        self._image.alpha_composite(image)

    def draw_premultiplied(self, rgba: np.ndarray, origin: tuple[int, int]) -> None:
        """Composite a premultiplied float RGBA patch (values 0-1) with its top-left at ``origin``."""
        patch = unpremultiply(rgba)
        self._image.alpha_composite(Image.fromarray(patch), dest=origin)

    def encode(self, format: str = "png", quality: int = 90) -> bytes:
        return encode_image(self._image, format, quality)


def unpremultiply(rgba: np.ndarray) -> np.ndarray:
    """Premultiplied float RGBA in [0, 1] to straight uint8 RGBA."""
    alpha = rgba[..., 3:4]
    rgb = np.divide(rgba[..., :3], alpha, out=np.zeros_like(rgba[..., :3]), where=alpha > 0)
    straight = np.concatenate([rgb, alpha], axis=-1)
    return np.clip(np.rint(straight * 255.0), 0, 255).astype(np.uint8)


def normalize_format(format: str) -> str:
    fmt = _FORMAT_ALIASES.get(format.lower(), format.lower())
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported format: {format}. Supported: {list(FORMATS)}")
    return fmt


def check_quality(quality: int) -> int:
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 100:
        raise ValueError(f"quality must be an integer in [0, 100], got {quality!r}")
    return quality


def load_image(source: ImageSource, role: str) -> Image.Image:
    """Decode ``source`` into an RGBA image with EXIF orientation applied.

    Raises:
        ImageDecodeError: If the source cannot be read or decoded. ``role`` names the input.
    """
    if isinstance(source, Image.Image):
        image = source
    else:
        try:
            if isinstance(source, (bytes, bytearray)):
                image = Image.open(io.BytesIO(bytes(source)))
            else:
                image = Image.open(source)
            image.load()
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(role, str(e)) from e
        image = ImageOps.exif_transpose(image)
    if image.width == 0 or image.height == 0:
        raise ImageDecodeError(role, "image is empty")
    return image.convert("RGBA")


def encode_image(image: Image.Image, format: str = "png", quality: int = 90) -> bytes:
    """Encode an RGBA image. PNG is lossless; JPEG flattens transparency onto black."""
    fmt = normalize_format(format)
    quality = check_quality(quality)
    buffer = io.BytesIO()
    if fmt == "jpeg":
        backdrop = Image.new("RGBA", image.size, (0, 0, 0, 255))
        flat = Image.alpha_composite(backdrop, image.convert("RGBA")).convert("RGB")
        flat.save(buffer, format=_PIL_FORMATS[fmt], quality=quality)
    else:
        image.save(buffer, format=_PIL_FORMATS[fmt])
    return buffer.getvalue()
