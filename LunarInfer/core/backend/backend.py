"""
Backend runtime selector for LunarInfer.

- Single import point for array backend (`xp`) and core runtime flags.
- Toggle CPU (NumPy) / GPU (CuPy).
- Centralized dtype handling.
- Global-access pattern:
    >>> import LunarInfer.core.backend.backend as backend
    >>> xp = backend.xp
    >>> DTYPE = backend.DTYPE

This module is intentionally stateful to be easy to use in userland code.
Modules that must follow a runtime switch read `backend.xp` at call time.
"""

from __future__ import annotations

import numpy as _np
from contextlib import contextmanager
from LunarInfer.core.backend.config import CONFIG


# ---------------------------
# Optional GPU backend (CuPy)
# ---------------------------
try:
    import cupy as _cp
    _CUPY_AVAILABLE = True
except ImportError:
    _cp = None
    _CUPY_AVAILABLE = False


# ---------------------------
# Public runtime state (globals)
# ---------------------------
xp = _np                       # current array module (NumPy or CuPy)
USING = "cpu"                  # "cpu" | "gpu"
VERBOSE = bool(CONFIG.get("verbose", True))

_DTYPES = {"float32": _np.float32, "float64": _np.float64}

DTYPE = _np.float32


def _log(msg: str):
    if VERBOSE:
        print(f"[LunarInfer] {msg}")


# ===========================
# Introspection / utilities
# ===========================
def gpu_available() -> bool:
    """Return True if CuPy is importable."""
    return _CUPY_AVAILABLE


def is_gpu() -> bool:
    """Return True if current backend is GPU (CuPy)."""
    return USING == "gpu"


def device_name() -> str:
    """Human-readable device name."""
    if is_gpu() and _cp is not None:
        try:
            dev_id = _cp.cuda.Device().id
            props = _cp.cuda.runtime.getDeviceProperties(dev_id)
            name = props.get("name", b"GPU").decode(errors="ignore")
            return f"GPU:{dev_id} ({name})"
        except _cp.cuda.runtime.CUDARuntimeError:
            return "GPU (CuPy)"
    return "CPU (NumPy)"


def get_device() -> str:
    """Return current device string: 'cpu' or 'gpu'."""
    return USING


def resolve_dtype(dtype=None):
    """
    Normalize a dtype spec ("float32", np.float64, np.dtype(...), None) to a NumPy scalar type.

    None resolves to the current master `DTYPE`.
    """
    if dtype is None:
        return DTYPE
    name = _np.dtype(dtype).name
    if name not in _DTYPES:
        raise ValueError(f"Unsupported dtype '{name}'. Expected one of {sorted(_DTYPES)}")
    return _DTYPES[name]


def dtype_name(dtype=None) -> str:
    """Return the canonical string name of a dtype ("float32" | "float64")."""
    return _np.dtype(resolve_dtype(dtype)).name


def to_numpy(arr):
    """Bring an array back to host memory as a NumPy array."""
    if _cp is not None and isinstance(arr, _cp.ndarray):
        return _cp.asnumpy(arr)
    return _np.asarray(arr)


def synchronize():
    """Block until all queued ops on the current device are complete."""
    if is_gpu() and _cp is not None:
        _cp.cuda.Stream.null.synchronize()


# ===========================
# Backend switching
# ===========================
def use_gpu():
    """
    Switch backend to GPU (CuPy).
    Raises ImportError if CuPy is not available.
    """
    global xp, USING
    if not _CUPY_AVAILABLE:
        raise ImportError("CuPy is not installed. Run `pip install cupy` to use GPU.")
    xp = _cp
    USING = "gpu"
    _log(f"Using {device_name()}")


def use_cpu():
    """Switch backend to CPU (NumPy)."""
    global xp, USING
    xp = _np
    USING = "cpu"
    _log(f"Using {device_name()}")


def _auto_select_device():
    device = str(CONFIG.get("device", "cpu")).lower()
    if device == "gpu":
        if _CUPY_AVAILABLE:
            use_gpu()
            return
        _log("GPU requested but CuPy is not installed. Falling back to CPU.")
    use_cpu()


# ===========================
# Runtime configuration
# ===========================
def set_dtype(dtype: str = "float32"):
    """Set master DTYPE to float32 or float64."""
    global DTYPE
    if dtype not in _DTYPES:
        raise ValueError("dtype must be 'float32' or 'float64'")
    DTYPE = _DTYPES[dtype]


def set_verbose(enabled: bool = True):
    """Enable/disable backend status messages."""
    global VERBOSE
    VERBOSE = bool(enabled)


@contextmanager
def precision_scope(dtype: str = "float32"):
    """
    Temporarily change the master dtype inside a `with` block.

    Layers built inside the block default to this element type.
    """
    global DTYPE
    prev = DTYPE
    set_dtype(dtype_name(dtype))
    try:
        yield DTYPE
    finally:
        DTYPE = prev


# Initialize from config
set_dtype(str(CONFIG.get("dtype", "float32")))
_auto_select_device()
