"""
Textual nested-array encoding of tensor contents.

Format
------
The innermost level is a bracketed, comma-joined list of numbers::

    [1.0,2.5,3.0]

Each outer level wraps its children with ``[\\n`` ... ``\\n]`` and separates
them with ``,\\n``::

    [
    [1.0,2.0],
    [3.0,4.0]
    ]

Numbers use the shortest decimal form that round-trips at the tensor's
dtype. Non-finite values are written as ``Infinity``, ``-Infinity`` and
``NaN``. The resulting text is a valid JSON array, so decoding uses
`json.loads`.
"""

from __future__ import annotations

import json
import math
from typing import Any

import numpy as np

from ...domain._errors import MalformedUnitError, ShapeError
from ..tensor._shape import infer_shape
from ..tensor._tensor import Tensor


def _format_number(x: Any) -> str:
    if isinstance(x, np.integer):
        return str(int(x))
    f = float(x)
    if math.isnan(f):
        return "NaN"
    if math.isinf(f):
        return "Infinity" if f > 0 else "-Infinity"
    # numpy scalars print the shortest repr that round-trips at their dtype
    return str(x) if isinstance(x, np.floating) else repr(f)


def _encode_level(arr: np.ndarray) -> str:
    if arr.ndim == 1:
        return "[" + ",".join(_format_number(v) for v in arr) + "]"
    return "[\n" + ",\n".join(_encode_level(sub) for sub in arr) + "\n]"


def encode(data: Any) -> str:
    """
    Encode tensor contents as nested bracketed literals.

    Parameters
    ----------
    data : Tensor | np.ndarray | nested sequence of numbers
        The contents to encode. Nesting mirrors the tensor's rank.

    Returns
    -------
    str
        The encoded payload.
    """
    if isinstance(data, Tensor):
        arr = data.data
    else:
        arr = np.asarray(data)
    if arr.ndim == 0:
        arr = arr.reshape(1)
    return _encode_level(arr)


def _reject_non_numbers(value: Any) -> None:
    if isinstance(value, list):
        for v in value:
            _reject_non_numbers(v)
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ShapeError(f"non-numeric value {value!r}")


def decode(text: str, member: str = "<payload>") -> np.ndarray:
    """
    Decode a payload produced by `encode` back into an array.

    Parameters
    ----------
    text : str
        The encoded payload.
    member : str, optional
        Name used in error messages.

    Returns
    -------
    np.ndarray
        A float64 array whose shape follows the nesting; never empty.

    Raises
    ------
    MalformedUnitError
        If the payload is not valid, not a nested list, ragged, empty,
        holds non-numeric values, or holds numbers outside the float range.
    """
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as e:
        raise MalformedUnitError(member, f"payload is not a nested numeric literal ({e})") from e

    if not isinstance(value, list):
        raise MalformedUnitError(member, "payload is not a bracketed list")
    try:
        _reject_non_numbers(value)
        infer_shape(value)
    except (ShapeError, RecursionError) as e:
        raise MalformedUnitError(member, str(e)) from e
    try:
        return np.asarray(value, dtype=np.float64)
    except (OverflowError, ValueError) as e:
        raise MalformedUnitError(member, f"value out of range ({e})") from e
