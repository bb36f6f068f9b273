import LunarInfer.core.backend.backend as backend
from LunarInfer.core import ops
from LunarInfer.core.errors import DeserializationError, DimensionMismatch, ShapeMismatch
from LunarInfer.core.engine import Archiver, Unarchiver
from LunarInfer.nn.activations import get_activation
from LunarInfer.nn.layers.base_layer import BaseLayer, LayerParameters, LayerType, register_layer

GATES = ("input", "forget", "candidate", "output")

_GATE_LETTERS = {"i": "input", "f": "forget", "c": "candidate", "o": "output"}


class LSTMParameters:
    """
    Weights and biases of the four LSTM gates.

    Each weight matrix has shape `(hidden_size, input_size + hidden_size)` and
    is applied to the concatenation `[x_t ; h_{t-1}]` (the `[W, U]` layout).
    Each bias has length `hidden_size`.

    Args:
        input_weights, forget_weights, candidate_weights, output_weights: Gate weight matrices.
        input_bias, forget_bias, candidate_bias, output_bias: Gate bias vectors.
    """
    def __init__(self, input_weights, forget_weights, candidate_weights, output_weights,
                 input_bias, forget_bias, candidate_bias, output_bias):
        self.input_weights = input_weights
        self.forget_weights = forget_weights
        self.candidate_weights = candidate_weights
        self.output_weights = output_weights

        self.input_bias = input_bias
        self.forget_bias = forget_bias
        self.candidate_bias = candidate_bias
        self.output_bias = output_bias

    def weights(self, gate):
        return getattr(self, f"{gate}_weights")

    def bias(self, gate):
        return getattr(self, f"{gate}_bias")

    @classmethod
    def from_stacked(cls, weights, bias, order: str = "ifco"):
        """
        Split fused gate blocks into per-gate parameters.

        Args:
            weights: Matrix of shape `(4 * hidden_size, input_size + hidden_size)`,
                gate blocks stacked along rows in `order`.
            bias: Vector of length `4 * hidden_size`, same order.
            order (str): Permutation of "ifco" naming the stacked gate order.

        Returns:
            LSTMParameters
        """
        if sorted(order) != sorted("ifco"):
            raise ValueError(f"order must be a permutation of 'ifco', got '{order}'")
        xp = backend.xp
        weights = xp.asarray(weights)
        bias = xp.asarray(bias).reshape(-1)
        if weights.ndim != 2 or weights.shape[0] % 4 != 0:
            raise DimensionMismatch(f"Stacked weights must have 4 * hidden_size rows, got shape {weights.shape}")
        hidden = weights.shape[0] // 4
        if bias.size != 4 * hidden:
            raise DimensionMismatch(f"Stacked bias must have {4 * hidden} values, got {bias.size}")

        blocks = {}
        for k, letter in enumerate(order):
            gate = _GATE_LETTERS[letter]
            rows = slice(k * hidden, (k + 1) * hidden)
            blocks[f"{gate}_weights"] = weights[rows]
            blocks[f"{gate}_bias"] = bias[rows]
        return cls(**blocks)


@register_layer
class LSTMLayer(BaseLayer):
    """
    Long Short-Term Memory layer for step-by-step inference.

    Each `compute` consumes one timestep and updates the retained state:
        i_t = g(W_i . [x_t ; h_{t-1}] + b_i)
        f_t = g(W_f . [x_t ; h_{t-1}] + b_f)
        o_t = g(W_o . [x_t ; h_{t-1}] + b_o)
        c~_t = s(W_c . [x_t ; h_{t-1}] + b_c)
        c_t = f_t * c_{t-1} + i_t * c~_t
        h_t = o_t * s(c_t)
    where g is the recurrent (gating) activation and s the squashing activation.
    `h_t` is written into the active region of the output buffer.

    The hidden size is the number of active output elements; the input size is
    the number of active input elements. The layer keeps read-only copies of
    the supplied parameters. State is zero after construction and after
    `reset()`; `compute` never resets implicitly. Not safe for concurrent
    `compute` calls on one instance, use `copy()` per sequence instead.

    NaN and Inf propagate through the update; nothing is clamped.

    Args:
        layer_parameters (LayerParameters): Input/output shapes and padding.
        parameters (LSTMParameters): Gate weights and biases.
        activation (str or Activation, optional): Squashing activation for the
            candidate and cell. Defaults to `"tanh"`.
        recurrent_activation (str or Activation, optional): Gating activation.
            Defaults to `"sigmoid"`.
        dtype (str or dtype, optional): Element type. Defaults to `backend.DTYPE`.

    Raises:
        DimensionMismatch: If any weight or bias does not fit the declared sizes.
    """
    layer_type = LayerType.lstm

    def __init__(self, layer_parameters: LayerParameters, parameters: LSTMParameters,
                 activation="tanh", recurrent_activation="sigmoid", dtype=None):
        super().__init__(layer_parameters, dtype)
        self._activation = get_activation(activation)
        self._recurrent_activation = get_activation(recurrent_activation)

        hidden, n_in = self.output_size, self.input_size
        self._weights = {}
        self._biases = {}
        for gate in GATES:
            self._weights[gate] = self._own_weights(gate, parameters.weights(gate), hidden, n_in)
            self._biases[gate] = self._own_bias(gate, parameters.bias(gate), hidden)

        self._hidden = None
        self._cell = None
        self.reset()

    def _own_weights(self, gate, W, hidden, n_in):
        W = backend.xp.array(W, dtype=self.dtype)
        expected = (hidden, n_in + hidden)
        if W.shape != expected:
            raise DimensionMismatch(f"{gate} weights must have shape {expected} "
                                    f"(hidden_size, input_size + hidden_size), got {W.shape}")
        return ops.freeze(W)

    def _own_bias(self, gate, b, hidden):
        b = backend.xp.array(b, dtype=self.dtype)
        # (n,), (n, 1) and (1, n) are all accepted
        if b.ndim > 2 or (b.ndim == 2 and 1 not in b.shape) or b.size != hidden:
            raise DimensionMismatch(f"{gate} bias must have length {hidden}, got shape {b.shape}")
        return ops.freeze(b.reshape(-1))

    # -------------------------------
    # Accessors
    # -------------------------------
    @property
    def hidden_size(self) -> int:
        return self.output_size

    @property
    def input_weights(self):
        return self._weights["input"]

    @property
    def forget_weights(self):
        return self._weights["forget"]

    @property
    def candidate_weights(self):
        return self._weights["candidate"]

    @property
    def output_weights(self):
        return self._weights["output"]

    @property
    def input_bias(self):
        return self._biases["input"]

    @property
    def forget_bias(self):
        return self._biases["forget"]

    @property
    def candidate_bias(self):
        return self._biases["candidate"]

    @property
    def output_bias(self):
        return self._biases["output"]

    @property
    def activation(self):
        """Squashing activation (candidate and cell)."""
        return self._activation

    @property
    def recurrent_activation(self):
        """Gating activation (input, forget and output gates)."""
        return self._recurrent_activation

    @property
    def parameters(self) -> LSTMParameters:
        return LSTMParameters(*(self._weights[g] for g in GATES), *(self._biases[g] for g in GATES))

    @property
    def hidden_state(self):
        return self._hidden

    @property
    def cell_state(self):
        return self._cell

    # -------------------------------
    # Compute / reset
    # -------------------------------
    def _compute(self, x):
        W, b = self._weights, self._biases
        gate = self._recurrent_activation
        squash = self._activation

        concat = ops.concat(x, self._hidden)

        i_t = gate(ops.affine(W["input"], concat, b["input"]))
        f_t = gate(ops.affine(W["forget"], concat, b["forget"]))
        o_t = gate(ops.affine(W["output"], concat, b["output"]))
        c_hat = squash(ops.affine(W["candidate"], concat, b["candidate"]))

        c_t = ops.add(ops.multiply(f_t, self._cell), ops.multiply(i_t, c_hat))
        h_t = ops.multiply(o_t, squash(c_t))

        # state arrays are replaced, never written in place
        self._cell = ops.freeze(c_t)
        self._hidden = ops.freeze(h_t)
        self._write_output(h_t)

    def reset(self):
        """Zero the hidden and cell state. Call between unrelated sequences."""
        self._hidden = ops.freeze(ops.zeros(self.hidden_size, self.dtype))
        self._cell = ops.freeze(ops.zeros(self.hidden_size, self.dtype))

    def compute_sequence(self, inputs, reset: bool = True):
        """
        Run a whole sequence through the layer, one timestep per `compute`.

        Args:
            inputs: Iterable of per-timestep inputs (e.g. an array of shape `(T, input_size)`).
            reset (bool, optional): Reset the state before the first step. Defaults to True.

        Returns:
            Array of shape `(T, hidden_size)` with the hidden state after every step.
        """
        if reset:
            self.reset()
        hs = []
        for x_t in inputs:
            self.compute(x_t)
            hs.append(self._hidden)
        if not hs:
            return backend.xp.zeros((0, self.hidden_size), dtype=self.dtype)
        return backend.xp.stack(hs)

    def copy(self):
        """
        Independent instance for a separate sequence.

        Parameters are shared (they are read-only); state and output buffer are duplicated.
        """
        other = super().copy()
        other._hidden = ops.freeze(self._hidden.copy())
        other._cell = ops.freeze(self._cell.copy())
        return other

    # -------------------------------
    # Runtime state
    # -------------------------------
    def state_dict(self):
        return {
            "hidden_state": self._hidden.copy(),
            "cell_state": self._cell.copy(),
        }

    def load_state_dict(self, state):
        restored = {}
        for key in ("hidden_state", "cell_state"):
            v = ops.as_vector(state[key], self.dtype)
            if v.size != self.hidden_size:
                raise ShapeMismatch(f"{key} must have {self.hidden_size} elements, got {v.size}")
            restored[key] = ops.freeze(v.copy())
        self._hidden = restored["hidden_state"]
        self._cell = restored["cell_state"]
        self._write_output(self._hidden)

    # -------------------------------
    # Serialization
    # -------------------------------
    def _write_to_archive(self, archiver: Archiver):
        for gate in GATES:
            archiver.write_matrix(f"{gate}_weights", self._weights[gate])
        for gate in GATES:
            archiver.write_vector(f"{gate}_bias", self._biases[gate])
        archiver.write("activation", self._activation.get_config())
        archiver.write("recurrent_activation", self._recurrent_activation.get_config())

    @classmethod
    def _read_from_archive(cls, unarchiver: Unarchiver, layer_parameters, dtype):
        weights = [unarchiver.read_matrix(f"{gate}_weights", dtype) for gate in GATES]
        biases = [unarchiver.read_vector(f"{gate}_bias", dtype) for gate in GATES]
        activation_cfg = unarchiver.read("activation")
        recurrent_cfg = unarchiver.read("recurrent_activation")
        try:
            activation = get_activation(activation_cfg)
            recurrent_activation = get_activation(recurrent_cfg)
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"Invalid activation in record: {e}") from e
        try:
            return cls(layer_parameters, LSTMParameters(*weights, *biases),
                       activation, recurrent_activation, dtype=dtype)
        except DimensionMismatch as e:
            raise DeserializationError(f"Inconsistent LSTM record: {e}") from e

    def extra_repr(self) -> str:
        return (f"input_size={self.input_size}, hidden_size={self.hidden_size}, "
                f"activation={self._activation.name}, "
                f"recurrent_activation={self._recurrent_activation.name}, "
                f"dtype={backend.dtype_name(self.dtype)}")
