from .base_layer import BaseLayer
from .base_layer import LayerType
from .base_layer import LayerParameters
from .base_layer import PaddingParameters
from .base_layer import LAYER_REGISTRY
from .base_layer import register_layer
from .base_layer import layer_class_for
from .base_layer import layer_from_config

from .lstm import LSTMLayer
from .lstm import LSTMParameters

__all__ = [
    "BaseLayer",
    "LayerType",
    "LayerParameters",
    "PaddingParameters",
    "LAYER_REGISTRY",
    "register_layer",
    "layer_class_for",
    "layer_from_config",
    "LSTMLayer",
    "LSTMParameters"
]
