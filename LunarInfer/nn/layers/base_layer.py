import copy
from enum import Enum

import numpy as np

import LunarInfer.core.backend.backend as backend
from LunarInfer.core import ops
from LunarInfer.core.errors import DeserializationError, ShapeMismatch
from LunarInfer.core.engine import Archiver, Unarchiver
from LunarInfer.nn.stateful import Stateful

SCHEMA_VERSION = 1


class LayerType(Enum):
    """Kind tag persisted with every layer record and used for registry dispatch."""
    lstm = "lstm"


class PaddingParameters:
    """
    Border reserved around a (rows, columns, channels) tensor.

    Args:
        scheme (str): "zeros", "min" or "max". Selects the value written into
            the border: 0, the lowest finite value of the dtype, or the highest.
        size (int): Border width in rows and columns.
    """
    SCHEMES = ("zeros", "min", "max")

    def __init__(self, scheme: str = "zeros", size: int = 0):
        if scheme not in self.SCHEMES:
            raise ValueError(f"Unsupported padding scheme '{scheme}'. Available: {list(self.SCHEMES)}")
        if int(size) < 0:
            raise ValueError(f"Padding size must be non-negative, got {size}")
        self.scheme = scheme
        self.size = int(size)

    def fill_value(self, dtype):
        if self.scheme == "min":
            return np.finfo(dtype).min
        if self.scheme == "max":
            return np.finfo(dtype).max
        return 0

    def get_config(self):
        return {"scheme": self.scheme, "size": self.size}

    @classmethod
    def from_archive(cls, unarchiver: Unarchiver):
        scheme = unarchiver.read_str("scheme", "zeros")
        size = unarchiver.read_int("size", 0)
        try:
            return cls(scheme, size)
        except ValueError as e:
            raise DeserializationError(str(e)) from e

    def __eq__(self, other):
        if not isinstance(other, PaddingParameters):
            return NotImplemented
        return self.scheme == other.scheme and self.size == other.size

    def __repr__(self):
        return f"PaddingParameters(scheme={self.scheme!r}, size={self.size})"


def _as_shape(shape, what):
    if isinstance(shape, (int, np.integer)):
        shape = (shape,)
    shape = tuple(int(d) for d in shape)
    if len(shape) == 1:
        shape = (1, 1) + shape
    if len(shape) != 3 or any(d <= 0 for d in shape):
        raise ValueError(f"{what} must be (rows, columns, channels) with positive sizes, got {shape}")
    return shape


class LayerParameters:
    """
    Parameters common to every layer: input and output shapes plus padding.

    Shapes are (rows, columns, channels) and include the padding border.
    A single int or 1-D shape `(n,)` is shorthand for `(1, 1, n)`.

    Args:
        input_shape: Shape of the tensor fed to the layer.
        output_shape: Shape of the output buffer the layer owns.
        input_padding (PaddingParameters, optional): Border of the input tensor.
        output_padding (PaddingParameters, optional): Border of the output buffer.
    """
    def __init__(self, input_shape, output_shape, input_padding=None, output_padding=None):
        self.input_shape = _as_shape(input_shape, "input_shape")
        self.output_shape = _as_shape(output_shape, "output_shape")
        self.input_padding = input_padding or PaddingParameters()
        self.output_padding = output_padding or PaddingParameters()

        for what, shape, pad in (("input", self.input_shape, self.input_padding),
                                 ("output", self.output_shape, self.output_padding)):
            if 2 * pad.size >= shape[0] or 2 * pad.size >= shape[1]:
                raise ValueError(f"{what} padding of {pad.size} leaves no room in shape {shape}")

    @staticmethod
    def _minus_padding(shape, pad):
        p = pad.size
        return (shape[0] - 2 * p, shape[1] - 2 * p, shape[2])

    @property
    def input_shape_minus_padding(self):
        return self._minus_padding(self.input_shape, self.input_padding)

    @property
    def output_shape_minus_padding(self):
        return self._minus_padding(self.output_shape, self.output_padding)

    @property
    def input_size(self) -> int:
        """Number of active (non-padding) input elements."""
        return int(np.prod(self.input_shape_minus_padding))

    @property
    def output_size(self) -> int:
        """Number of active (non-padding) output elements."""
        return int(np.prod(self.output_shape_minus_padding))

    def get_config(self):
        return {
            "input_shape": list(self.input_shape),
            "output_shape": list(self.output_shape),
            "input_padding": self.input_padding.get_config(),
            "output_padding": self.output_padding.get_config(),
        }

    @classmethod
    def from_archive(cls, unarchiver: Unarchiver):
        input_padding = PaddingParameters.from_archive(unarchiver.read_archive("input_padding")) \
            if "input_padding" in unarchiver else None
        output_padding = PaddingParameters.from_archive(unarchiver.read_archive("output_padding")) \
            if "output_padding" in unarchiver else None
        try:
            return cls(unarchiver.read_shape("input_shape"),
                       unarchiver.read_shape("output_shape"),
                       input_padding, output_padding)
        except ValueError as e:
            raise DeserializationError(str(e)) from e

    def __eq__(self, other):
        if not isinstance(other, LayerParameters):
            return NotImplemented
        return self.get_config() == other.get_config()

    def __repr__(self):
        return (f"LayerParameters(input_shape={self.input_shape}, output_shape={self.output_shape}, "
                f"input_padding={self.input_padding}, output_padding={self.output_padding})")


# -------------------------------
# Layer registry
# -------------------------------
LAYER_REGISTRY = {}

def register_layer(cls):
    """Class decorator: register a concrete layer under its `layer_type`."""
    kind = cls.layer_type
    if not isinstance(kind, LayerType):
        raise TypeError(f"{cls.__name__}.layer_type must be a LayerType, got {kind!r}")
    if kind in LAYER_REGISTRY and LAYER_REGISTRY[kind] is not cls:
        raise ValueError(f"Layer kind '{kind.value}' already registered to {LAYER_REGISTRY[kind].__name__}")
    LAYER_REGISTRY[kind] = cls
    return cls

def layer_class_for(tag):
    """Look up the concrete layer class for a kind tag (LayerType or its string value)."""
    try:
        kind = tag if isinstance(tag, LayerType) else LayerType(tag)
    except (TypeError, ValueError):
        raise DeserializationError(f"Unknown layer kind '{tag}'. "
                                   f"Available: {[k.value for k in LAYER_REGISTRY]}") from None
    if kind not in LAYER_REGISTRY:
        raise DeserializationError(f"No layer registered for kind '{kind.value}'")
    return LAYER_REGISTRY[kind]


def layer_from_config(config):
    """Rebuild any registered layer from a record produced by `get_config`."""
    unarchiver = Unarchiver(config)
    cls = layer_class_for(unarchiver.read("kind"))
    return cls.from_config(config)


class BaseLayer(Stateful):
    """
    Base class for inference layers.

    Owns the output buffer (allocated once, padding border pre-filled) and
    provides the uniform `compute` / `reset` entry points an executor calls.
    Subclasses set `layer_type`, implement `_compute(input_vector)`,
    `reset()`, `_write_to_archive` and `_read_from_archive`.

    Args:
        layer_parameters (LayerParameters): Shapes and padding.
        dtype (str or dtype, optional): Element type. Defaults to `backend.DTYPE`.
    """
    layer_type = None

    def __init__(self, layer_parameters: LayerParameters, dtype=None):
        if not isinstance(layer_parameters, LayerParameters):
            raise TypeError(f"layer_parameters must be LayerParameters, got {type(layer_parameters).__name__}")
        self.layer_parameters = layer_parameters
        self.dtype = backend.resolve_dtype(dtype)
        self._input = None

        fill = layer_parameters.output_padding.fill_value(self.dtype)
        self._output = backend.xp.full(layer_parameters.output_shape, fill, dtype=self.dtype)

    # -------------------------------
    # Identity
    # -------------------------------
    @property
    def kind(self) -> LayerType:
        return self.layer_type

    @classmethod
    def get_type_name(cls, dtype=None) -> str:
        return f"{cls.__name__}<{backend.dtype_name(dtype)}>"

    @property
    def type_name(self) -> str:
        return self.get_type_name(self.dtype)

    # -------------------------------
    # Buffers
    # -------------------------------
    @property
    def input_size(self) -> int:
        return self.layer_parameters.input_size

    @property
    def output_size(self) -> int:
        return self.layer_parameters.output_size

    @property
    def output(self):
        """The full output buffer, padding included."""
        return self._output

    @property
    def output_minus_padding(self):
        """View of the active (non-padding) region of the output buffer."""
        p = self.layer_parameters.output_padding.size
        if p == 0:
            return self._output
        return self._output[p:-p, p:-p, :]

    def set_input(self, x):
        """Bind the tensor read by `compute()` when it is called without an argument."""
        self._input = x
        return self

    def _input_vector(self, x):
        arr = ops.as_array(x, self.dtype)
        lp = self.layer_parameters
        p = lp.input_padding.size
        if p and arr.shape == lp.input_shape:
            arr = arr[p:-p, p:-p, :]
        if arr.size != self.input_size:
            raise ShapeMismatch(f"{self.__class__.__name__} expects {self.input_size} input elements, "
                                f"got {arr.size} (shape {arr.shape})")
        return arr.reshape(-1)

    def _write_output(self, v):
        self.output_minus_padding[...] = v.reshape(self.layer_parameters.output_shape_minus_padding)

    # -------------------------------
    # Compute / reset
    # -------------------------------
    def compute(self, x=None):
        """
        Feed one input through the layer and return the output buffer.

        Args:
            x (array, optional): Input tensor. Defaults to the tensor bound by `set_input`.

        Returns:
            The layer's output buffer (same object on every call).
        """
        if x is None:
            x = self._input
        if x is None:
            raise ShapeMismatch(f"{self.__class__.__name__}.compute() called with no input bound")
        self._compute(self._input_vector(x))
        return self._output

    def __call__(self, x=None):
        return self.compute(x)

    def _compute(self, input_vector):
        raise NotImplementedError

    def reset(self):
        raise NotImplementedError

    def copy(self):
        """Independent copy: own output buffer, subclasses duplicate their own state."""
        other = copy.copy(self)
        other._output = self._output.copy()
        return other

    # -------------------------------
    # Serialization
    # -------------------------------
    def get_config(self):
        archiver = Archiver()
        archiver.write("kind", self.kind)
        archiver.write("version", SCHEMA_VERSION)
        archiver.write("type_name", self.type_name)
        archiver.write("dtype", self.dtype)
        archiver.write("layer_parameters", self.layer_parameters.get_config())
        params = Archiver()
        self._write_to_archive(params)
        archiver.write_archive("params", params)
        return archiver.record

    @classmethod
    def from_config(cls, config):
        unarchiver = Unarchiver(config)
        kind = unarchiver.read("kind")
        if kind != cls.layer_type.value:
            raise DeserializationError(f"{cls.__name__} cannot read a record of kind '{kind}'")
        version = unarchiver.read_int("version")
        if version != SCHEMA_VERSION:
            raise DeserializationError(f"Unsupported schema version {version} (expected {SCHEMA_VERSION})")
        dtype_str = unarchiver.read_str("dtype")
        try:
            dtype = backend.resolve_dtype(dtype_str)
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"Invalid dtype '{dtype_str}' in record: {e}") from e
        type_name = unarchiver.read_str("type_name")
        if type_name != cls.get_type_name(dtype):
            raise DeserializationError(f"Record type name '{type_name}' does not match "
                                       f"'{cls.get_type_name(dtype)}'")
        layer_parameters = LayerParameters.from_archive(unarchiver.read_archive("layer_parameters"))
        return cls._read_from_archive(unarchiver.read_archive("params"), layer_parameters, dtype)

    def _write_to_archive(self, archiver: Archiver):
        raise NotImplementedError

    @classmethod
    def _read_from_archive(cls, unarchiver: Unarchiver, layer_parameters: LayerParameters, dtype):
        raise NotImplementedError

    def __repr__(self):
        class_name = self.__class__.__name__
        extra = self.extra_repr()
        if extra:
            return f"{class_name}({extra})"
        lp = self.layer_parameters
        return f"{class_name}(in={lp.input_shape}, out={lp.output_shape})"

    def extra_repr(self) -> str:
        """
        Override in subclasses to provide custom layer-specific
        information for __repr__.
        """
        return ""
