import json
from typing import Any

import yaml

from textbehind.layers import TextLayer


def read_yaml(path: str) -> dict[str, Any]:
    with open(path, "r") as f:
        # An empty file loads as None.
        return yaml.safe_load(f) or {}


def read_json(path: str) -> dict[str, Any] | list[Any]:
    with open(path, "r") as f:
        return json.load(f)


def save_json(data: dict[str, Any] | list[Any], path: str, indent: int | None = None) -> None:
    with open(path, "w") as f:
        json.dump(data, f, indent=indent)


def load_layers(path: str) -> list[TextLayer]:
    """Read text layers from a JSON file holding a list of layers or ``{"layers": [...]}``.

    Raises:
        ValueError: If the file does not hold a layer list or a layer is invalid.
    """
    data = read_json(path)
    if isinstance(data, dict):
        data = data.get("layers")
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of text layers in {path}")
    return [TextLayer.from_dict(item) for item in data]


def save_layers(layers: list[TextLayer], path: str, indent: int | None = 2) -> None:
    save_json({"layers": [layer.to_dict() for layer in layers]}, path, indent=indent)
