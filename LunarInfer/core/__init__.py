from . import backend
from . import ops
from .errors import LunarInferError
from .errors import DimensionMismatch
from .errors import ShapeMismatch
from .errors import DeserializationError

__all__ = [
    "backend",
    "ops",
    "LunarInferError",
    "DimensionMismatch",
    "ShapeMismatch",
    "DeserializationError"
]
