from .io import load_layers, read_json, read_yaml, save_json, save_layers
from .log import setup_logging

__all__ = ["load_layers", "read_json", "read_yaml", "save_json", "save_layers", "setup_logging"]
