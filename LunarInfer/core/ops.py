"""
Dense matrix/vector routines used by the layers.

Every function reads `backend.xp` at call time so that a backend switch
(`use_cpu` / `use_gpu`) is picked up without re-importing layers.
"""
import LunarInfer.core.backend.backend as backend


def zeros(n, dtype=None):
    """Zero vector of length `n`."""
    return backend.xp.zeros((n,), dtype=backend.resolve_dtype(dtype))


def as_array(x, dtype=None):
    """Move `x` onto the current backend with the given dtype (copying only when needed)."""
    return backend.xp.asarray(x, dtype=backend.resolve_dtype(dtype))


def as_vector(x, dtype=None):
    """Flatten `x` in row-major (channel fastest) order to a 1-D vector."""
    return as_array(x, dtype).reshape(-1)


def concat(a, b):
    """[a ; b] for two vectors."""
    return backend.xp.concatenate((a, b))


def matvec(M, v):
    """Matrix-vector product M . v"""
    return backend.xp.matmul(M, v)


def add(a, b):
    return backend.xp.add(a, b)


def multiply(a, b):
    """Elementwise (Hadamard) product."""
    return backend.xp.multiply(a, b)


def affine(W, x, b):
    """W . x + b"""
    return add(matvec(W, x), b)


def freeze(arr):
    """Mark an array read-only where the backend supports it (NumPy)."""
    flags = getattr(arr, "flags", None)
    if flags is not None and hasattr(flags, "writeable"):
        arr.flags.writeable = False
    return arr
