import numpy as np
import pytest

import LunarInfer.core.backend.backend as backend
from LunarInfer.core.backend import config


def test_cli_overrides_ignore_foreign_flags():
    cli = config.parse_cli_args(["-q", "--co", "--device", "cpu", "--dtype", "float64",
                                 "--lunar-verbose", "false", "tests/"])
    assert cli == {"device": "cpu", "dtype": "float64", "verbose": False}


def test_yaml_config_is_loaded(tmp_path):
    path = tmp_path / "lunarinfer.yaml"
    path.write_text("dtype: float64\nverbose: false\n")
    assert config.load_yaml_config(str(path)) == {"dtype": "float64", "verbose": False}


def test_missing_yaml_gives_empty_config(tmp_path):
    assert config.load_yaml_config(str(tmp_path / "absent.yaml")) == {}


def test_yaml_must_be_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- cpu\n- gpu\n")
    with pytest.raises(ValueError):
        config.load_yaml_config(str(path))


def test_cli_wins_over_yaml_and_defaults(tmp_path):
    path = tmp_path / "lunarinfer.yaml"
    path.write_text("dtype: float64\nverbose: false\n")
    cfg = config.load_config(["--config", str(path), "--lunar-verbose", "true"])
    assert cfg["dtype"] == "float64"
    assert cfg["verbose"] is True
    assert cfg["device"] == config.DEFAULTS["device"]


def test_resolve_dtype():
    assert backend.resolve_dtype("float64") is np.float64
    assert backend.resolve_dtype(np.dtype("float32")) is np.float32
    assert backend.resolve_dtype(None) is backend.DTYPE
    with pytest.raises(ValueError):
        backend.resolve_dtype("float16")


def test_precision_scope_restores_dtype():
    before = backend.DTYPE
    with backend.precision_scope("float64") as dtype:
        assert dtype is np.float64
        assert backend.DTYPE is np.float64
    assert backend.DTYPE is before


def test_set_dtype_validates():
    with pytest.raises(ValueError):
        backend.set_dtype("int8")


def test_cpu_backend_is_numpy():
    assert backend.xp is np
    assert backend.get_device() == "cpu"
    assert backend.device_name() == "CPU (NumPy)"


def test_use_gpu_without_cupy():
    if backend.gpu_available():
        pytest.skip("CuPy installed")
    with pytest.raises(ImportError):
        backend.use_gpu()


def test_switching_device_leaves_global_rng_alone():
    np.random.seed(42)
    expected = np.random.random(3)

    np.random.seed(42)
    backend.use_cpu()
    np.testing.assert_array_equal(np.random.random(3), expected)


def test_config_has_no_seed_key():
    assert "seed" not in config.DEFAULTS
    assert "seed" not in config.parse_cli_args(["--seed", "3"])
