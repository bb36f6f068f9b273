from .activations import ACTIVATIONS
from .activations import Activation
from .activations import get_activation
from .activations import Linear
from .activations import Sigmoid
from .activations import HardSigmoid
from .activations import Tanh
from .activations import HardTanh
from .activations import ReLU
from .activations import LeakyReLU
from .activations import linear
from .activations import sigmoid
from .activations import hard_sigmoid
from .activations import tanh
from .activations import hard_tanh
from .activations import relu
from .activations import leaky_relu

__all__ = [
    "ACTIVATIONS",
    "Activation",
    "get_activation",
    "Linear",
    "Sigmoid",
    "HardSigmoid",
    "Tanh",
    "HardTanh",
    "ReLU",
    "LeakyReLU",
    "linear",
    "sigmoid",
    "hard_sigmoid",
    "tanh",
    "hard_tanh",
    "relu",
    "leaky_relu"
]
