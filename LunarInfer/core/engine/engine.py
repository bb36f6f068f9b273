import json
from enum import Enum

import numpy as np

import LunarInfer.core.backend.backend as backend
from LunarInfer.core.errors import DeserializationError


def serialize_value(val):
    """Convert Python/numpy/cupy objects into JSON-safe formats."""
    if isinstance(val, (int, float, str, bool)) or val is None:
        return val
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, np.generic):  # e.g. np.float32
        return val.item()
    if isinstance(val, np.dtype) or (isinstance(val, type) and issubclass(val, np.generic)):
        return np.dtype(val).name
    if isinstance(val, dict):
        return {str(k): serialize_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [serialize_value(v) for v in val]
    if hasattr(val, "get_config"):
        return val.get_config()
    if isinstance(val, (np.ndarray, backend.xp.ndarray)):
        return backend.to_numpy(val).tolist()
    raise TypeError(f"Cannot serialize value of type {type(val).__name__}")


def save(obj, path):
    """Write `obj.get_config()` to `path` as JSON."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj.get_config(), f, indent=2)


def load(path):
    """
    Rebuild a layer from a JSON file written by `save`.

    Dispatches on the record's kind tag through the layer registry.
    """
    from LunarInfer.nn.layers import layer_from_config

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DeserializationError(f"{path} is not a valid JSON record: {e}") from e
    return layer_from_config(config)
