import LunarInfer.core.backend.backend as backend

# -----------------------------
# Elementwise functions
# -----------------------------
# All functions take and return backend arrays (NumPy or CuPy) and keep
# NaN/Inf flowing through: nothing here clips its input. Scalars and
# integer arrays are promoted to the master float dtype first.

def _as_float(x):
    x = backend.xp.asarray(x)
    if x.dtype.kind != "f":
        x = x.astype(backend.DTYPE)
    return x

def linear(x):
    """Identity."""
    return _as_float(x)

def sigmoid(x):
    """
    Sigmoid activation.

    Computes 1 / (1 + exp(-x)) as exp(-log(1 + exp(-x))) so that large
    negative inputs do not overflow.

    Args:
        x: Input array.

    Returns:
        Array with values in [0, 1].
    """
    xp = backend.xp
    x = _as_float(x)
    return xp.exp(-xp.logaddexp(0, -x)).astype(x.dtype, copy=False)

def hard_sigmoid(x):
    """
    Piecewise-linear sigmoid approximation: clip(0.2 * x + 0.5, 0, 1).
    """
    xp = backend.xp
    x = _as_float(x)
    return xp.clip(x * x.dtype.type(0.2) + x.dtype.type(0.5), 0, 1).astype(x.dtype, copy=False)

def tanh(x):
    """Hyperbolic tangent, values in [-1, 1]."""
    return backend.xp.tanh(_as_float(x))

def hard_tanh(x):
    """clip(x, -1, 1)"""
    x = _as_float(x)
    return backend.xp.clip(x, -1, 1).astype(x.dtype, copy=False)

def relu(x):
    """max(0, x) elementwise."""
    x = _as_float(x)
    return backend.xp.maximum(x, 0).astype(x.dtype, copy=False)

def leaky_relu(x, alpha=0.01):
    """
    Leaky ReLU activation.

    Computes elementwise x if x > 0 else alpha * x.
    """
    xp = backend.xp
    x = _as_float(x)
    return xp.where(x > 0, x, x * x.dtype.type(alpha))


# -----------------------------
# Activation objects
# -----------------------------
class Activation:
    """
    Stateless elementwise activation with a stable identifier.

    Subclasses set `name` and implement `apply`. Two activations compare
    equal when their names and parameters match, which is what
    serialization round trips rely on.
    """
    name = None

    def apply(self, x):
        raise NotImplementedError

    def __call__(self, x):
        return self.apply(x)

    def params(self) -> dict:
        return {}

    def get_config(self):
        config = {"name": self.name}
        params = self.params()
        if params:
            config["params"] = params
        return config

    @classmethod
    def from_config(cls, cfg):
        return cls(**cfg.get("params", {}))

    def __eq__(self, other):
        if not isinstance(other, Activation):
            return NotImplemented
        return self.name == other.name and self.params() == other.params()

    def __hash__(self):
        return hash((self.name, tuple(sorted(self.params().items()))))

    def __repr__(self):
        params = ", ".join(f"{k}={v}" for k, v in self.params().items())
        return f"{self.__class__.__name__}({params})"


class Linear(Activation):
    name = "linear"

    def apply(self, x):
        return linear(x)


class Sigmoid(Activation):
    name = "sigmoid"

    def apply(self, x):
        return sigmoid(x)


class HardSigmoid(Activation):
    name = "hard_sigmoid"

    def apply(self, x):
        return hard_sigmoid(x)


class Tanh(Activation):
    name = "tanh"

    def apply(self, x):
        return tanh(x)


class HardTanh(Activation):
    name = "hard_tanh"

    def apply(self, x):
        return hard_tanh(x)


class ReLU(Activation):
    name = "relu"

    def apply(self, x):
        return relu(x)


class LeakyReLU(Activation):
    """
    Leaky ReLU with a configurable negative slope.

    Args:
        alpha (float, optional): Slope for negative values. Default is 0.01.
    """
    name = "leaky_relu"

    def __init__(self, alpha: float = 0.01):
        self.alpha = float(alpha)

    def apply(self, x):
        return leaky_relu(x, self.alpha)

    def params(self):
        return {"alpha": self.alpha}


ACTIVATIONS = {
    cls.name: cls
    for cls in (Linear, Sigmoid, HardSigmoid, Tanh, HardTanh, ReLU, LeakyReLU)
}

def get_activation(spec):
    """
    Resolve an activation from a name, a config dict or an Activation instance.

    Args:
        spec (str, dict or Activation):
            - If str, instantiates the registered activation with default params.
            - If dict, expects `{"name": str, "params": dict}` as produced by `get_config`.
            - If Activation, returns it directly.

    Returns:
        Activation: The activation object.
    """
    if isinstance(spec, Activation):
        return spec
    if isinstance(spec, str):
        if spec not in ACTIVATIONS:
            raise ValueError(f"Unsupported activation '{spec}'. "
                             f"Available: {list(ACTIVATIONS.keys())}")
        return ACTIVATIONS[spec]()
    if isinstance(spec, dict):
        name = spec.get("name")
        if name not in ACTIVATIONS:
            raise ValueError(f"Unsupported activation '{name}'. "
                             f"Available: {list(ACTIVATIONS.keys())}")
        params = spec.get("params", {})
        if not isinstance(params, dict):
            raise ValueError(f"Activation params must be a mapping, got {type(params).__name__}")
        return ACTIVATIONS[name].from_config(spec)
    raise TypeError("Activation must be a string, a config dict or an Activation")
