"""Canonical JSON serialization and content digests.

Composite outputs are compared across runs, chunk sizes and worker counts by
digest, so serialization must be byte-stable:

- Sorted keys (recursive), no whitespace, UTF-8
- Floats rounded to 10 decimal places; NaN/Inf rejected
- Numpy arrays and scalars converted to Python values
- Dates, datetimes and enums converted to their ISO/value strings

Raster bands are hashed from their raw little-endian bytes instead, since
they legitimately contain NaN where masked.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Iterable
from datetime import date, datetime
from enum import Enum
from typing import Any

import numpy as np

FLOAT_DECIMAL_PLACES = 10


class CanonicalEncoder(json.JSONEncoder):
    """JSON encoder applying the canonical value rules before encoding."""

    def default(self, o: Any) -> Any:
        if isinstance(o, np.ndarray):
            return o.tolist()
        if isinstance(o, (np.integer, np.floating)):
            return o.item()
        if isinstance(o, np.bool_):
            return bool(o)
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return super().default(o)

    def encode(self, o: Any) -> str:
        return super().encode(self._process_value(o))

    def _process_value(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            return {str(k): self._process_value(v) for k, v in sorted(obj.items(), key=lambda kv: str(kv[0]))}
        if isinstance(obj, (list, tuple)):
            return [self._process_value(item) for item in obj]
        if isinstance(obj, np.ndarray):
            return [self._process_value(item) for item in obj.tolist()]
        if isinstance(obj, Enum):
            return self._process_value(obj.value)
        if isinstance(obj, (bool, np.bool_)):
            return bool(obj)
        if isinstance(obj, (float, np.floating)):
            return self._process_float(float(obj))
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return obj

    def _process_float(self, value: float) -> float | int:
        """Round to FLOAT_DECIMAL_PLACES; whole values become ints.

        Raises:
            ValueError: If value is NaN or Inf.
        """
        if math.isnan(value):
            raise ValueError("NaN values are not allowed in canonical JSON")
        if math.isinf(value):
            raise ValueError("Inf values are not allowed in canonical JSON")
        rounded = round(value, FLOAT_DECIMAL_PLACES)
        if rounded == int(rounded) and abs(rounded) < 2**53:
            return int(rounded)
        return rounded


def canonical_json(obj: Any) -> bytes:
    """Deterministic UTF-8 JSON bytes for ``obj``.

    Example:
        >>> canonical_json({"b": 2, "a": 1.0})
        b'{"a":1,"b":2}'
    """
    encoder = CanonicalEncoder(sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return encoder.encode(obj).encode("utf-8")


def canonical_hash(obj: Any) -> str:
    """SHA-256 hex digest of ``canonical_json(obj)``."""
    return hashlib.sha256(canonical_json(obj)).hexdigest()


def array_digest_update(hasher: Any, name: str, values: np.ndarray[Any, Any]) -> None:
    """Feed a named array into ``hasher`` by dtype, shape and little-endian bytes."""
    arr = np.ascontiguousarray(values)
    arr = arr.astype(arr.dtype.newbyteorder("<"), copy=False)
    header = canonical_json({"name": name, "dtype": arr.dtype.str, "shape": list(arr.shape)})
    hasher.update(header)
    hasher.update(arr.tobytes())


def arrays_digest(arrays: Iterable[tuple[str, np.ndarray[Any, Any]]], metadata: Any = None) -> str:
    """SHA-256 over named arrays (in the given order) and optional JSON metadata."""
    hasher = hashlib.sha256()
    for name, values in arrays:
        array_digest_update(hasher, name, values)
    if metadata is not None:
        hasher.update(canonical_json(metadata))
    return hasher.hexdigest()
