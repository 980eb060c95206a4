from abc import ABC, abstractmethod
from types import TracebackType

import numpy as np
from PIL import Image

from textbehind.errors import SegmentationFailure


class BaseSegmenter(ABC):
    """Base class for segmentation backends for validating inputs and outputs.

    A backend receives an RGB image and returns the foreground cutout: an RGBA
    image of identical pixel dimensions whose background pixels are transparent.
    """

    async def __call__(self, image: Image.Image) -> Image.Image:
        image = self._validate_inputs(image)
        cutout = await self.segment(image)
        return self._validate_outputs(cutout, image)

    @abstractmethod
    async def segment(self, image: Image.Image) -> Image.Image:
        """Extract the foreground cutout of ``image``.

        Raises:
            SegmentationFailure: If the backend cannot produce a cutout.
        """
        pass

    async def aclose(self) -> None:
        """Release the backend's resources (connections, models)."""
        pass

    async def __aenter__(self) -> "BaseSegmenter":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _validate_inputs(self, image: Image.Image) -> Image.Image:
        if not isinstance(image, Image.Image):
            raise TypeError(f"Expected PIL.Image, got {type(image)}")
        if image.width == 0 or image.height == 0:
            raise ValueError(f"Image must not be empty, got size {image.size}")
        return image if image.mode == "RGB" else image.convert("RGB")

    def _validate_outputs(self, cutout: Image.Image, image: Image.Image) -> Image.Image:
        if not isinstance(cutout, Image.Image):
            raise TypeError(f"Expected PIL.Image, got {type(cutout)}")
        if cutout.size != image.size:
            raise SegmentationFailure(f"Cutout size {cutout.size} does not match input image size {image.size}")
        return cutout if cutout.mode == "RGBA" else cutout.convert("RGBA")


def cutout_from_alpha(image: Image.Image, alpha: np.ndarray) -> Image.Image:
    """Attach an alpha matte (float, values in [0, 1]) to ``image``."""
    if alpha.shape[:2] != (image.height, image.width):
        raise ValueError(f"Alpha shape {alpha.shape[:2]} does not match image size {(image.height, image.width)}")
    matte = Image.fromarray(np.clip(np.rint(alpha * 255.0), 0, 255).astype(np.uint8))
    cutout = image.convert("RGBA")
    cutout.putalpha(matte)
    return cutout
