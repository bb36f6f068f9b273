"""
Round trips and failure modes of the persisted layer record.
"""
import copy
import json

import numpy as np
import pytest

import LunarInfer
from LunarInfer.core.engine import Archiver, Unarchiver
from LunarInfer.core.errors import DeserializationError, DimensionMismatch
from LunarInfer.nn.activations import LeakyReLU
from LunarInfer.nn.layers import (
    BaseLayer, LayerParameters, LayerType, LSTMLayer, LSTMParameters, PaddingParameters,
    layer_class_for, layer_from_config, register_layer,
)

GATES = ("input", "forget", "candidate", "output")


def assert_same_parameters(a, b):
    for gate in GATES:
        np.testing.assert_array_equal(getattr(a, f"{gate}_weights"), getattr(b, f"{gate}_weights"))
        np.testing.assert_array_equal(getattr(a, f"{gate}_bias"), getattr(b, f"{gate}_bias"))
    assert a.activation == b.activation
    assert a.recurrent_activation == b.recurrent_activation
    assert a.dtype == b.dtype
    assert a.layer_parameters == b.layer_parameters


@pytest.fixture
def record(make_layer):
    return make_layer().get_config()


# -------------------------------
# Round trips
# -------------------------------
@pytest.mark.parametrize("dtype", ["float32", "float64"])
def test_round_trip_parameters_and_outputs(make_layer, rng, dtype):
    layer = make_layer(dtype=dtype)
    xs = rng.normal(size=(5, 3))
    layer.compute(xs[0])

    restored = LSTMLayer.from_config(json.loads(json.dumps(layer.get_config())))

    assert_same_parameters(layer, restored)
    np.testing.assert_array_equal(restored.hidden_state, np.zeros(4))
    np.testing.assert_array_equal(layer.compute_sequence(xs), restored.compute_sequence(xs))


def test_round_trip_keeps_activation_params(rng):
    lp = LayerParameters(2, 3, output_padding=PaddingParameters("zeros", 0))
    W = rng.normal(size=(3, 5))
    b = rng.normal(size=3)
    layer = LSTMLayer(lp, LSTMParameters(W, W, W, W, b, b, b, b),
                      activation=LeakyReLU(alpha=0.3), recurrent_activation="hard_sigmoid")

    restored = layer_from_config(layer.get_config())

    assert restored.activation == LeakyReLU(alpha=0.3)
    assert restored.recurrent_activation.name == "hard_sigmoid"


def test_round_trip_with_padding(rng):
    lp = LayerParameters((3, 3, 2), (4, 4, 1),
                         input_padding=PaddingParameters("zeros", 1),
                         output_padding=PaddingParameters("max", 1))
    W = rng.normal(size=(4, 6))
    b = np.zeros(4)
    layer = LSTMLayer(lp, LSTMParameters(W, W, W, W, b, b, b, b), dtype="float64")

    restored = layer_from_config(layer.get_config())

    assert restored.layer_parameters == lp
    x = rng.normal(size=2)
    np.testing.assert_array_equal(layer.compute(x), restored.compute(x))


def test_save_and_load_file(make_layer, rng, tmp_path):
    layer = make_layer()
    path = tmp_path / "lstm.json"

    LunarInfer.save(layer, path)
    restored = LunarInfer.load(path)

    assert isinstance(restored, LSTMLayer)
    assert_same_parameters(layer, restored)
    x = rng.normal(size=3)
    np.testing.assert_array_equal(layer.compute(x), restored.compute(x))


def test_state_is_not_persisted(make_layer, rng):
    layer = make_layer()
    layer.compute(rng.normal(size=3))
    text = json.dumps(layer.get_config())
    assert "hidden_state" not in text
    assert "cell_state" not in text


# -------------------------------
# Record layout
# -------------------------------
def test_record_layout(record):
    assert record["kind"] == "lstm"
    assert record["version"] == 1
    assert record["type_name"] == "LSTMLayer<float64>"
    assert record["dtype"] == "float64"
    params = record["params"]
    for gate in GATES:
        assert params[f"{gate}_weights"]["rows"] == 4
        assert params[f"{gate}_weights"]["columns"] == 7
        assert len(params[f"{gate}_weights"]["data"]) == 28
        assert len(params[f"{gate}_bias"]) == 4
    assert params["activation"] == {"name": "tanh"}
    assert params["recurrent_activation"] == {"name": "sigmoid"}


def test_registry_dispatch():
    assert layer_class_for("lstm") is LSTMLayer
    assert layer_class_for(LayerType.lstm) is LSTMLayer


def test_register_layer_requires_kind():
    with pytest.raises(TypeError):
        @register_layer
        class Untagged(BaseLayer):
            layer_type = "untagged"


def test_register_layer_rejects_second_class_for_kind():
    with pytest.raises(ValueError):
        @register_layer
        class AnotherLSTM(BaseLayer):
            layer_type = LayerType.lstm


# -------------------------------
# Corrupt records
# -------------------------------
def _corrupt(record, mutate):
    bad = copy.deepcopy(record)
    mutate(bad)
    return bad


@pytest.mark.parametrize("mutate", [
    lambda r: r.update(kind="gru"),
    lambda r: r.pop("kind"),
    lambda r: r.update(version=2),
    lambda r: r.update(dtype="float16"),
    lambda r: r.update(dtype="not-a-dtype"),
    lambda r: r.pop("params"),
    lambda r: r["params"].pop("forget_bias"),
    lambda r: r["params"].pop("output_weights"),
    lambda r: r["params"]["input_weights"].update(columns=3),
    lambda r: r["params"]["input_weights"].update(data="oops"),
    lambda r: r["params"]["candidate_bias"].__setitem__(0, "x"),
    lambda r: r["params"].update(activation={"name": "swish"}),
    lambda r: r["params"].update(recurrent_activation=42),
    lambda r: r["params"].update(activation={"name": "leaky_relu", "params": {"beta": 1}}),
    lambda r: r["layer_parameters"].update(output_shape=[1, 1, 0]),
    lambda r: r["layer_parameters"]["output_padding"].update(scheme="reflect"),
    lambda r: r.update(type_name="LSTMLayer<float32>"),
    lambda r: r.pop("type_name"),
], ids=[
    "unknown-kind", "missing-kind", "future-version", "unsupported-dtype", "bad-dtype",
    "missing-params", "missing-bias", "missing-weights", "matrix-count", "matrix-data",
    "non-numeric-bias", "unknown-activation", "activation-not-mapping", "activation-bad-param",
    "zero-output", "bad-padding", "type-name-dtype-mismatch", "missing-type-name",
])
def test_corrupt_record_raises(record, mutate):
    with pytest.raises(DeserializationError):
        layer_from_config(_corrupt(record, mutate))


def test_inconsistent_shapes_raise(record):
    def shrink_hidden(r):
        r["layer_parameters"]["output_shape"] = [1, 1, 3]

    with pytest.raises(DeserializationError) as info:
        LSTMLayer.from_config(_corrupt(record, shrink_hidden))
    assert isinstance(info.value.__cause__, DimensionMismatch)


def test_consistent_matrix_with_wrong_shape_raises(record):
    def widen(r):
        r["params"]["forget_weights"] = {"rows": 4, "columns": 8, "data": [0.0] * 32}

    with pytest.raises(DeserializationError):
        LSTMLayer.from_config(_corrupt(record, widen))


def test_record_must_be_mapping():
    with pytest.raises(DeserializationError):
        layer_from_config(["lstm"])


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{ not json")
    with pytest.raises(DeserializationError):
        LunarInfer.load(path)


def test_load_binary_garbage(tmp_path):
    path = tmp_path / "garbage.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(DeserializationError) as info:
        LunarInfer.load(path)
    assert isinstance(info.value.__cause__, UnicodeDecodeError)


def test_deserialization_error_is_value_error(record):
    with pytest.raises(ValueError):
        layer_from_config(_corrupt(record, lambda r: r.update(kind="gru")))


# -------------------------------
# Archiver / Unarchiver
# -------------------------------
def test_archiver_fields():
    archiver = Archiver()
    archiver.write("count", np.int64(3))
    archiver["name"] = "cell"
    archiver.write_vector("v", np.array([1.0, 2.0], dtype=np.float32))
    archiver.write_matrix("m", np.zeros((0, 3)))

    reader = Unarchiver(json.loads(json.dumps(archiver.record)))

    assert reader.read_int("count") == 3
    assert reader.read_str("name") == "cell"
    np.testing.assert_array_equal(reader.read_vector("v", "float32"), [1.0, 2.0])
    assert reader.read_matrix("m").shape == (0, 3)
    assert reader.read("missing", None) is None


def test_archiver_rejects_wrong_rank():
    with pytest.raises(ValueError):
        Archiver().write_matrix("m", np.zeros(3))
    with pytest.raises(ValueError):
        Archiver().write_vector("v", np.zeros((2, 2)))


def test_unarchiver_names_nested_field():
    reader = Unarchiver({"outer": {"inner": "x"}})
    with pytest.raises(DeserializationError, match="outer.inner"):
        reader.read_archive("outer").read_int("inner")


def test_unarchiver_rejects_bool_as_int():
    with pytest.raises(DeserializationError):
        Unarchiver({"n": True}).read_int("n")
