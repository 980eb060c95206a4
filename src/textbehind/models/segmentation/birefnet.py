import asyncio
import logging
import warnings
from typing import cast

import cv2
import numpy as np
import torch
from PIL import Image
from torchvision import transforms
from transformers import AutoModelForImageSegmentation

from textbehind.errors import SegmentationFailure
from textbehind.models.segmentation.base import BaseSegmenter, cutout_from_alpha

# BiRefNet's remote model code still imports the deprecated timm module paths.
warnings.filterwarnings("ignore", category=FutureWarning, module="timm.models.layers")
warnings.filterwarnings("ignore", category=FutureWarning, module="timm.models.registry")

logger = logging.getLogger(__name__)


class BiRefNetSegmenter(BaseSegmenter):
    """Local BiRefNet matting model producing the foreground cutout.

    Inference runs in a worker thread so a pending segmentation never blocks the event loop.
    """

    def __init__(
        self,
        hf_card: str = "ZhengPeng7/BiRefNet",
        process_image_size: tuple[int, int] | None = None,
        device: str = "cpu",
        weight_path: str | None = None,
    ) -> None:
        self.model = AutoModelForImageSegmentation.from_pretrained(hf_card, trust_remote_code=True)
        if weight_path is not None:
            state_dict = torch.load(weight_path, map_location="cpu", weights_only=True)
            self.model.load_state_dict(state_dict)
            logger.info(f"Loaded weights from {weight_path}")
        self.model.to(device)
        self.model.eval()
        self.device = device

        if process_image_size is None:
            if hasattr(self.model, "config") and hasattr(self.model.config, "size"):
                default_size = cast(int, self.model.config.size)
                self.process_image_size = (default_size, default_size)
                logger.info(f"Using model's trained size: {self.process_image_size}, as no size was specified")
            else:
                self.process_image_size = (1024, 1024)
                logger.warning("Could not get model's trained size, using default: (1024, 1024)")
        else:
            self.process_image_size = tuple(process_image_size)

        self.transform = transforms.Compose(
            [
                transforms.Resize(self.process_image_size),
                transforms.ToTensor(),
                transforms.Normalize([0.485, 0.456, 0.406], [0.229, 0.224, 0.225]),  # ImageNet mean/std
            ]
        )

    def infer(self, image: Image.Image) -> np.ndarray:
        """Alpha matte of ``image`` as float64 values in [0, 1]."""
        w, h = image.size
        input_tensor = self.transform(image).unsqueeze(0).to(self.device)
        with torch.no_grad():
            preds = self.model(input_tensor)[-1].sigmoid().cpu()
        pred = preds[0].squeeze()
        pred = cv2.resize(pred.numpy(), (w, h), interpolation=cv2.INTER_LINEAR)
        return np.clip(pred, 0.0, 1.0).astype(np.float64)

    async def segment(self, image: Image.Image) -> Image.Image:
        try:
            alpha = await asyncio.to_thread(self.infer, image)
        except RuntimeError as e:
            raise SegmentationFailure(f"BiRefNet inference failed: {e}") from e
        return cutout_from_alpha(image, alpha)

    def to(self, device: str) -> "BiRefNetSegmenter":
        """Move model to specified device (e.g., 'cpu' or 'cuda')."""
        self.model.to(device)
        self.device = device
        return self

    async def aclose(self) -> None:
        self.model = None
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
