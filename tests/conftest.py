"""
Pytest configuration and fixtures for LunarInfer tests.
"""
import numpy as np
import pytest

import LunarInfer.core.backend.backend as backend
from LunarInfer.nn.layers import LayerParameters, LSTMLayer, LSTMParameters


def pytest_configure(config):
    """Add custom markers."""
    config.addinivalue_line(
        "markers", "gpu: mark test as requiring CuPy (skipped when it is not installed)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip GPU tests when CuPy is not available."""
    if not backend.gpu_available():
        skip_gpu = pytest.mark.skip(reason="CuPy not available")
        for item in items:
            if "gpu" in item.keywords:
                item.add_marker(skip_gpu)


@pytest.fixture(autouse=True)
def cpu_backend():
    """Every test starts and ends on the NumPy backend."""
    backend.use_cpu()
    yield
    backend.use_cpu()


@pytest.fixture
def rng():
    """Seeded generator for reproducible parameters."""
    return np.random.default_rng(1234)


def make_parameters(rng, input_size, hidden_size, dtype=np.float64):
    """Random per-gate parameters for an LSTM of the given sizes."""
    def w():
        return rng.normal(0.0, 0.5, (hidden_size, input_size + hidden_size)).astype(dtype)

    def b():
        return rng.normal(0.0, 0.1, hidden_size).astype(dtype)

    return LSTMParameters(w(), w(), w(), w(), b(), b(), b(), b())


@pytest.fixture
def make_layer(rng):
    """Factory: LSTM layer with random parameters."""
    def _make(input_size=3, hidden_size=4, dtype="float64", **kwargs):
        params = make_parameters(rng, input_size, hidden_size, np.dtype(dtype).type)
        return LSTMLayer(LayerParameters(input_size, hidden_size), params, dtype=dtype, **kwargs)
    return _make


@pytest.fixture
def scenario_layer():
    """
    hidden_size = input_size = 1, all weights 1 except the forget weights (0),
    zero biases, tanh / sigmoid.
    """
    ones = np.ones((1, 2))
    zeros = np.zeros((1, 2))
    b = np.zeros(1)
    params = LSTMParameters(ones, zeros, ones, ones, b, b, b, b)
    return LSTMLayer(LayerParameters(1, 1), params, activation="tanh", recurrent_activation="sigmoid")
