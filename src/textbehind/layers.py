"""Text layer data model.

A ``TextLayer`` is an immutable value: every edit produces a new instance with
the same ``id`` via :meth:`TextLayer.merged`. Holding layers in tuples is
therefore enough to snapshot an editing session for a render in progress.
"""

import math
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Mapping

from PIL import ImageColor

DEFAULT_GRADIENT_STOPS = {"start": "#ff0000", "middle": "#00ff00", "end": "#0000ff"}

# camelCase keys of the editor JSON layer format that map onto snake_case fields.
_KEY_ALIASES = {
    "size": "font_size",
    "fontSize": "font_size",
    "font": "font_family",
    "fontFamily": "font_family",
    "shadowColor": "shadow_color",
    "shadowBlur": "shadow_blur",
    "shadowOffset": "shadow_offset",
    "gradientColors": "gradient_colors",
}
_TRANSFORM_ALIASES = {"skewX": "skew_x", "skewY": "skew_y"}
# Editor-only flags that have no rendering meaning.
_IGNORED_KEYS = {"active"}


def new_layer_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ShadowOffset:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class GradientColors:
    start: str = DEFAULT_GRADIENT_STOPS["start"]
    middle: str = DEFAULT_GRADIENT_STOPS["middle"]
    end: str = DEFAULT_GRADIENT_STOPS["end"]


@dataclass(frozen=True)
class SkewTransform:
    """Shear angles in degrees, applied in the layer's local frame."""

    skew_x: float = 0.0
    skew_y: float = 0.0


@dataclass(frozen=True)
class TextLayer:
    """One independently styled text element.

    ``x`` and ``y`` are percentages of the target surface so the same layer can be
    drawn on surfaces of any size. ``rotation`` is in degrees, clockwise positive.
    """

    id: str
    text: str = "New Text"
    x: float = 50.0
    y: float = 50.0
    font_size: float = 24.0
    font_family: str = "Arial"
    color: str = "#000000"
    rotation: float = 0.0
    scale: float = 1.0
    opacity: float = 1.0
    blur: float = 0.0
    shadow: bool = False
    shadow_color: str = "#000000"
    shadow_blur: float = 5.0
    shadow_offset: ShadowOffset = field(default_factory=ShadowOffset)
    gradient: bool = False
    gradient_colors: GradientColors = field(default_factory=GradientColors)
    transform: SkewTransform = field(default_factory=SkewTransform)

    def __post_init__(self) -> None:
        _validate(self)

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    @classmethod
    def create(cls, **overrides: Any) -> "TextLayer":
        """Create a layer with a fresh id and the default style."""
        overrides.pop("id", None)
        return cls(id=new_layer_id()).merged(**overrides)

    def merged(self, **updates: Any) -> "TextLayer":
        """Return a copy with ``updates`` merged over the current fields.

        Nested values (``shadow_offset``, ``gradient_colors``, ``transform``) may be
        given as mappings and are merged field by field. The id never changes.

        Raises:
            ValueError: On unknown fields, an attempt to change the id, or invalid values.
        """
        updates = _normalize_keys(updates)
        if "id" in updates and updates.pop("id") != self.id:
            raise ValueError("Layer id cannot be changed")
        known = {f.name for f in fields(self)}
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown text layer fields: {sorted(unknown)}")

        if "shadow_offset" in updates:
            updates["shadow_offset"] = _merge_nested(self.shadow_offset, updates["shadow_offset"])
        if "gradient_colors" in updates:
            updates["gradient_colors"] = _merge_gradient(self.gradient_colors, updates["gradient_colors"])
        if "transform" in updates:
            updates["transform"] = _merge_nested(self.transform, updates["transform"])
        for name in ("shadow", "gradient"):
            if name in updates:
                updates[name] = bool(updates[name])
        return replace(self, **updates)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TextLayer":
        """Build a layer from its JSON form. A missing id gets a fresh one."""
        data = dict(data)
        layer_id = data.pop("id", None) or new_layer_id()
        return cls(id=str(layer_id)).merged(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _normalize_keys(updates: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in updates.items():
        if key in _IGNORED_KEYS:
            continue
        if key == "position":
            normalized["x"], normalized["y"] = value
            continue
        key = _KEY_ALIASES.get(key, key)
        if key == "transform" and isinstance(value, Mapping):
            value = {_TRANSFORM_ALIASES.get(k, k): v for k, v in value.items()}
        normalized[key] = value
    return normalized


def _merge_nested(current: Any, value: Any) -> Any:
    if isinstance(value, type(current)):
        return value
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected a mapping for {type(current).__name__}, got {type(value).__name__}")
    try:
        return replace(current, **dict(value))
    except TypeError as e:
        raise ValueError(f"Invalid {type(current).__name__} fields: {e}") from e


def _merge_gradient(current: GradientColors, value: Any) -> GradientColors:
    if isinstance(value, GradientColors):
        return value
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected a mapping for gradient colors, got {type(value).__name__}")
    # An emptied stop falls back to that stop's default colour.
    stops = {k: (v or DEFAULT_GRADIENT_STOPS.get(k)) for k, v in value.items()}
    try:
        return replace(current, **stops)
    except TypeError as e:
        raise ValueError(f"Invalid gradient stops: {e}") from e


def _check_number(name: str, value: float, low: float | None = None, high: float | None = None) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    if low is not None and value < low:
        raise ValueError(f"{name} must be >= {low}, got {value}")
    if high is not None and value > high:
        raise ValueError(f"{name} must be <= {high}, got {value}")


def _check_color(name: str, value: str) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a color string, got {value!r}")
    # Raises ValueError for unknown color specifiers.
    ImageColor.getrgb(value)


def _validate(layer: TextLayer) -> None:
    if not isinstance(layer.id, str) or not layer.id:
        raise ValueError("Layer id must be a non-empty string")
    if not isinstance(layer.text, str):
        raise ValueError(f"text must be a string, got {type(layer.text).__name__}")
    if not isinstance(layer.font_family, str):
        raise ValueError(f"font_family must be a string, got {type(layer.font_family).__name__}")
    _check_number("x", layer.x, 0, 100)
    _check_number("y", layer.y, 0, 100)
    _check_number("font_size", layer.font_size)
    if layer.font_size <= 0:
        raise ValueError(f"font_size must be positive, got {layer.font_size}")
    _check_number("rotation", layer.rotation)
    _check_number("scale", layer.scale, 0)
    _check_number("opacity", layer.opacity, 0, 1)
    _check_number("blur", layer.blur, 0)
    _check_number("shadow_blur", layer.shadow_blur, 0)
    _check_number("shadow_offset.x", layer.shadow_offset.x)
    _check_number("shadow_offset.y", layer.shadow_offset.y)
    _check_number("transform.skew_x", layer.transform.skew_x)
    _check_number("transform.skew_y", layer.transform.skew_y)
    _check_color("color", layer.color)
    _check_color("shadow_color", layer.shadow_color)
    _check_color("gradient_colors.start", layer.gradient_colors.start)
    _check_color("gradient_colors.middle", layer.gradient_colors.middle)
    _check_color("gradient_colors.end", layer.gradient_colors.end)
