from . import core
from . import nn

from .core.backend import backend
from .core.engine import save
from .core.engine import load

__version__ = "0.1.0"

__all__ = [
    "core",
    "nn",
    "backend",
    "save",
    "load"
]
