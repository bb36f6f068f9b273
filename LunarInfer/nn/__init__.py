from .stateful import Stateful

from . import activations
from . import layers

__all__ = [
    "Stateful",
    "activations",
    "layers"
]
