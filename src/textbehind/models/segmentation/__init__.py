"""Segmentation backends and registry."""

from typing import Any, Callable

from textbehind.models.segmentation.base import BaseSegmenter, cutout_from_alpha
from textbehind.models.segmentation.removebg import RemoveBgSegmenter


def _birefnet() -> type[BaseSegmenter]:
    # torch and transformers are only installed with the "matting" extra.
    from textbehind.models.segmentation.birefnet import BiRefNetSegmenter

    return BiRefNetSegmenter


SEGMENTERS: dict[str, Callable[[], type[BaseSegmenter]]] = {
    "removebg": lambda: RemoveBgSegmenter,
    "birefnet": _birefnet,
}


def build_segmenter(name: str, **kwargs: Any) -> BaseSegmenter:
    """Create a segmentation backend by name.

    Args:
        name: Name of the backend (e.g., "removebg")
        **kwargs: Additional arguments for backend initialization

    Returns:
        Initialized segmentation backend

    Raises:
        ValueError: If the backend name is not found in registry
    """
    if name not in SEGMENTERS:
        available = list(SEGMENTERS.keys())
        raise ValueError(f"Unknown segmentation backend: {name}. Available: {available}")
    return SEGMENTERS[name]()(**kwargs)


__all__ = ["BaseSegmenter", "RemoveBgSegmenter", "build_segmenter", "cutout_from_alpha"]
