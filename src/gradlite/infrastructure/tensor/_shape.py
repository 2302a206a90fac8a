"""
Shape utilities shared by tensor construction, views and autograd.

- `normalize_shape` validates user-provided shapes (positive integer extents).
- `infer_shape` measures the nesting of literal data and rejects ragged input.
- `resolve_view_shape` validates a reshape target, inferring at most one -1.
- `sum_to_shape` reduces a broadcast gradient back to an operand's shape.
"""

from __future__ import annotations

import numbers
from typing import Any, Sequence, Union

import numpy as np

from ...domain._errors import ShapeError

ShapeLike = Union[int, Sequence[int]]


def _is_int(x: Any) -> bool:
    return isinstance(x, numbers.Integral) and not isinstance(x, bool)


def _is_number(x: Any) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, bool)


def numel(shape: Sequence[int]) -> int:
    """
    Return the number of elements implied by `shape`.
    """
    n = 1
    for d in shape:
        n *= int(d)
    return int(n)


def normalize_shape(shape: ShapeLike) -> tuple[int, ...]:
    """
    Validate a shape argument and return it as a tuple of ints.

    Parameters
    ----------
    shape : int | Sequence[int]
        A single extent or a sequence of extents.

    Returns
    -------
    tuple[int, ...]
        The validated shape.

    Raises
    ------
    ShapeError
        If the shape is empty, or any extent is not a positive integer.
    """
    if _is_int(shape):
        dims: tuple[Any, ...] = (shape,)
    elif isinstance(shape, (Sequence, np.ndarray)) and not isinstance(shape, (str, bytes)):
        dims = tuple(shape)
    else:
        raise ShapeError(f"shape must be an int or a sequence of ints, got {shape!r}")

    if len(dims) == 0:
        raise ShapeError("shape must have at least one dimension")

    out = []
    for i, d in enumerate(dims):
        if not _is_int(d):
            raise ShapeError(f"shape dimension {i} must be an int, got {d!r}")
        if int(d) < 1:
            raise ShapeError(f"shape dimension {i} must be positive, got {int(d)}")
        out.append(int(d))
    return tuple(out)


def infer_shape(data: Any) -> tuple[int, ...]:
    """
    Infer the shape of nested literal data.

    The depth of nesting gives the rank and the length of each level gives
    the extent of that dimension. Every slice at a given depth must have the
    same length and leaves must all sit at the same depth.

    Parameters
    ----------
    data : nested sequence of numbers

    Returns
    -------
    tuple[int, ...]
        The inferred shape.

    Raises
    ------
    ShapeError
        If the data is empty, ragged, or contains non-numeric leaves.
    """
    if _is_number(data):
        raise ShapeError("expected nested sequence data, got a bare number")

    shape: list[int] = []
    level = data
    while isinstance(level, (list, tuple)):
        if len(level) == 0:
            raise ShapeError("tensor data must not contain empty sequences")
        shape.append(len(level))
        level = level[0]

    _check_rectangular(data, tuple(shape), 0)
    return tuple(shape)


def _check_rectangular(data: Any, shape: tuple[int, ...], depth: int) -> None:
    if depth == len(shape):
        if not _is_number(data):
            raise ShapeError(
                f"inconsistent nesting: expected a number at depth {depth}, got {data!r}"
            )
        return
    if not isinstance(data, (list, tuple)):
        raise ShapeError(
            f"inconsistent nesting: expected a sequence at depth {depth}, got {data!r}"
        )
    if len(data) != shape[depth]:
        raise ShapeError(
            f"inconsistent nesting at depth {depth}: expected length "
            f"{shape[depth]}, got {len(data)}"
        )
    for child in data:
        _check_rectangular(child, shape, depth + 1)


def resolve_view_shape(src_shape: tuple[int, ...], dims: Sequence[Any]) -> tuple[int, ...]:
    """
    Resolve the target shape of a view/reshape.

    Accepts either separate dims (``view(t, 2, 3)``) or a single sequence
    (``view(t, (2, 3))``). At most one dimension may be -1, in which case it
    is inferred from the element count.

    Raises
    ------
    ShapeError
        If the element count differs from the source, or the dims are invalid.
    """
    if len(dims) == 1 and isinstance(dims[0], (list, tuple)):
        dims = tuple(dims[0])
    if len(dims) == 0:
        raise ShapeError("view expects at least one dimension")

    for d in dims:
        if not _is_int(d):
            raise ShapeError(f"view dimensions must be ints, got {d!r}")

    dims = tuple(int(d) for d in dims)
    total = numel(src_shape)

    inferred = [i for i, d in enumerate(dims) if d == -1]
    if len(inferred) > 1:
        raise ShapeError("only one view dimension can be inferred (-1)")
    if any(d < 1 and d != -1 for d in dims):
        raise ShapeError(f"invalid view dimensions {dims}")

    if inferred:
        known = numel(d for d in dims if d != -1)
        if total % known != 0:
            raise ShapeError(f"shape {dims} is invalid for input of size {total}")
        dims = tuple(total // known if d == -1 else d for d in dims)

    if numel(dims) != total:
        raise ShapeError(f"shape {dims} is invalid for input of size {total}")
    return dims


def sum_to_shape(arr: np.ndarray, target_shape: tuple[int, ...]) -> np.ndarray:
    """
    Sum-reduce a broadcast array back to `target_shape`.

    Inverse of NumPy broadcasting: leading dimensions added by broadcasting
    are summed away, and dimensions that were 1 in the target are summed with
    ``keepdims=True``. A zero-rank target (a plain number operand) reduces to
    a 0-d array.
    """
    src = tuple(arr.shape)
    tgt = tuple(int(d) for d in target_shape)
    if src == tgt:
        return arr

    if len(tgt) > len(src):
        raise ShapeError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded_tgt = (1,) * pad + tgt

    for i, (sd, td) in enumerate(zip(src, padded_tgt)):
        if td not in (1, sd):
            raise ShapeError(
                f"Cannot sum_to_shape from {src} to {tgt}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )

    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded_tgt)) if td == 1 and sd != 1
    )
    out = arr.sum(axis=reduce_axes, keepdims=True) if reduce_axes else arr
    return out.reshape(tgt)
