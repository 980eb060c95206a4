"""Application configuration loaded from YAML over built-in defaults."""

import copy
import logging
import os.path as osp
from dataclasses import dataclass, field
from typing import Any

from textbehind.models.segmentation import SEGMENTERS
from textbehind.render.compositor import FONT_SIZE_MODES
from textbehind.render.surface import check_quality, normalize_format
from textbehind.utils.io import read_yaml

logger = logging.getLogger(__name__)

RENDER_POLICIES = ("lazy", "eager")
FAILURE_POLICIES = ("fallback", "propagate")

_DEFAULTS: dict[str, Any] = {
    "render": {
        "policy": "lazy",
        "font_size_mode": "absolute",
        "reference_height": 600,
        "max_dimension": 8192,
        "default_font": None,
        "font_dirs": [],
        "fonts": {},
    },
    "export": {
        "format": "png",
        "quality": 90,
    },
    "segmentation": {
        "backend": "removebg",
        "timeout_sec": 300.0,
        "on_failure": "fallback",
        "params": {},
    },
}


@dataclass
class RenderConfig:
    policy: str = "lazy"
    font_size_mode: str = "absolute"
    reference_height: int = 600
    max_dimension: int = 8192
    default_font: str | None = None
    font_dirs: list[str] = field(default_factory=list)
    fonts: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_choice("render.policy", self.policy, RENDER_POLICIES)
        _check_choice("render.font_size_mode", self.font_size_mode, FONT_SIZE_MODES)
        if self.reference_height <= 0:
            raise ValueError(f"render.reference_height must be positive, got {self.reference_height}")
        if self.max_dimension <= 0:
            raise ValueError(f"render.max_dimension must be positive, got {self.max_dimension}")


@dataclass
class ExportConfig:
    format: str = "png"
    quality: int = 90

    def __post_init__(self) -> None:
        self.format = normalize_format(self.format)
        check_quality(self.quality)


@dataclass
class SegmentationConfig:
    backend: str = "removebg"
    timeout_sec: float = 300.0
    on_failure: str = "fallback"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_choice("segmentation.backend", self.backend, tuple(SEGMENTERS))
        _check_choice("segmentation.on_failure", self.on_failure, FAILURE_POLICIES)
        if self.timeout_sec <= 0:
            raise ValueError(f"segmentation.timeout_sec must be positive, got {self.timeout_sec}")


@dataclass
class AppConfig:
    render: RenderConfig = field(default_factory=RenderConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        """Build a config from a (possibly partial) mapping merged over the defaults.

        Raises:
            ValueError: On unknown sections or keys, or invalid values.
        """
        merged = _deep_merge(_DEFAULTS, data)
        unknown = set(merged) - set(_DEFAULTS)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        try:
            return cls(
                render=RenderConfig(**merged["render"]),
                export=ExportConfig(**merged["export"]),
                segmentation=SegmentationConfig(**merged["segmentation"]),
            )
        except TypeError as e:
            raise ValueError(f"Invalid config: {e}") from e


def _check_choice(name: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise ValueError(f"Unknown {name}: {value}. Available: {list(choices)}")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str | None = None) -> AppConfig:
    """Load the YAML config at ``path``; without a path the defaults are used."""
    if path is None:
        return AppConfig()
    if not osp.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    config = AppConfig.from_dict(read_yaml(path))
    logger.info(f"Loaded config from {path}")
    return config
