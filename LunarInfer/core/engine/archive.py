import numbers

import numpy as np

import LunarInfer.core.backend.backend as backend
from LunarInfer.core.engine.engine import serialize_value
from LunarInfer.core.errors import DeserializationError


class Archiver:
    """
    Builds a field-keyed, JSON-safe record.

    Every field is written under a stable string key so readers can look
    fields up by name regardless of order. Matrices are stored as
    ``{"rows", "columns", "data"}`` with row-major flat data, which keeps
    the column count even for matrices with no rows.

    Example:
        >>> archiver = Archiver()
        >>> archiver.write("hidden_size", 4)
        >>> archiver.write_matrix("input_weights", W)
        >>> record = archiver.record
    """
    def __init__(self):
        self._fields = {}

    @property
    def record(self) -> dict:
        return self._fields

    def write(self, key: str, value):
        self._fields[key] = serialize_value(value)
        return self

    def write_vector(self, key: str, v):
        v = backend.to_numpy(v)
        if v.ndim != 1:
            raise ValueError(f"Field '{key}' expects a vector, got shape {v.shape}")
        self._fields[key] = v.tolist()
        return self

    def write_matrix(self, key: str, M):
        M = backend.to_numpy(M)
        if M.ndim != 2:
            raise ValueError(f"Field '{key}' expects a matrix, got shape {M.shape}")
        self._fields[key] = {
            "rows": int(M.shape[0]),
            "columns": int(M.shape[1]),
            "data": M.reshape(-1).tolist(),
        }
        return self

    def write_archive(self, key: str, archiver: "Archiver"):
        self._fields[key] = archiver.record
        return self

    def __setitem__(self, key, value):
        self.write(key, value)


class Unarchiver:
    """
    Reads fields written by `Archiver`.

    Every failure (missing key, wrong type, bad shape) surfaces as
    `DeserializationError` naming the offending field.
    """
    _MISSING = object()

    def __init__(self, record, path: str = ""):
        if not isinstance(record, dict):
            raise DeserializationError(
                f"Expected a mapping{self._where(path)}, got {type(record).__name__}"
            )
        self._record = record
        self._path = path

    @staticmethod
    def _where(path):
        return f" at '{path}'" if path else ""

    def _name(self, key):
        return f"{self._path}.{key}" if self._path else key

    def __contains__(self, key):
        return key in self._record

    def keys(self):
        return self._record.keys()

    def read(self, key: str, default=_MISSING):
        if key not in self._record:
            if default is not Unarchiver._MISSING:
                return default
            raise DeserializationError(f"Missing field '{self._name(key)}'")
        return self._record[key]

    def read_int(self, key: str, default=_MISSING) -> int:
        val = self.read(key, default)
        if isinstance(val, bool) or not isinstance(val, numbers.Integral):
            raise DeserializationError(f"Field '{self._name(key)}' must be an integer, got {val!r}")
        return int(val)

    def read_str(self, key: str, default=_MISSING) -> str:
        val = self.read(key, default)
        if not isinstance(val, str):
            raise DeserializationError(f"Field '{self._name(key)}' must be a string, got {val!r}")
        return val

    def read_shape(self, key: str, default=_MISSING) -> tuple:
        val = self.read(key, default)
        if not isinstance(val, (list, tuple)) or not val:
            raise DeserializationError(f"Field '{self._name(key)}' must be a non-empty list, got {val!r}")
        for dim in val:
            if isinstance(dim, bool) or not isinstance(dim, numbers.Integral) or dim < 0:
                raise DeserializationError(f"Field '{self._name(key)}' has invalid dimension {dim!r}")
        return tuple(int(d) for d in val)

    def read_archive(self, key: str) -> "Unarchiver":
        return Unarchiver(self.read(key), self._name(key))

    def _to_array(self, key, data, dtype):
        try:
            arr = np.asarray(data, dtype=backend.resolve_dtype(dtype))
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"Field '{self._name(key)}' holds non-numeric data: {e}") from e
        return arr

    def read_vector(self, key: str, dtype=None):
        data = self.read(key)
        if not isinstance(data, list):
            raise DeserializationError(f"Field '{self._name(key)}' must be a list, got {type(data).__name__}")
        arr = self._to_array(key, data, dtype)
        if arr.ndim != 1:
            raise DeserializationError(f"Field '{self._name(key)}' must be a flat vector, got shape {arr.shape}")
        return backend.xp.asarray(arr)

    def read_matrix(self, key: str, dtype=None):
        sub = self.read_archive(key)
        rows = sub.read_int("rows")
        cols = sub.read_int("columns")
        data = sub.read("data")
        if not isinstance(data, list):
            raise DeserializationError(f"Field '{self._name(key)}.data' must be a list")
        arr = self._to_array(key, data, dtype)
        if rows < 0 or cols < 0 or arr.ndim != 1 or arr.size != rows * cols:
            raise DeserializationError(
                f"Field '{self._name(key)}' declares {rows}x{cols} but holds {arr.size} values"
            )
        return backend.xp.asarray(arr.reshape(rows, cols))
