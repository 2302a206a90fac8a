"""
Tensor constructors.

Every constructor returns a new leaf tensor: `requires_grad` comes from the
keyword (default False) and no graph node is ever attached. Only
differentiable operations attach graph nodes.

Random constructors draw from a module-level `numpy.random.Generator` that
`manual_seed` reseeds.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from ...domain._errors import ShapeError
from ._shape import ShapeLike, infer_shape, normalize_shape
from ._tensor import DEFAULT_DTYPE, Tensor

_generator = np.random.default_rng()


def manual_seed(seed: int) -> None:
    """
    Reseed the generator used by `rand` and `randn`.
    """
    global _generator
    _generator = np.random.default_rng(seed)


def _filled(shape: ShapeLike, value: float, requires_grad: bool, dtype: Any) -> Tensor:
    t = Tensor(shape, requires_grad=requires_grad, dtype=dtype)
    t.fill(value)
    return t


def tensor(data: Any, requires_grad: bool = False, dtype: Any = None) -> Tensor:
    """
    Construct a tensor from nested literal data.

    The shape is inferred from the nesting depth and the length of each
    level. Every slice at a given depth must have the same length.

    Parameters
    ----------
    data : nested sequence of numbers | number | np.ndarray | Tensor
        Source data. A bare number becomes a tensor of shape ``(1,)``. Arrays
        and tensors are copied.
    requires_grad : bool, optional
        Whether the tensor should track gradients. Defaults to False.
    dtype : np.dtype, optional
        Element dtype. Defaults to float32 (or the array's floating dtype).

    Raises
    ------
    ShapeError
        If the data is empty, ragged, or contains non-numeric leaves.
    """
    if isinstance(data, Tensor):
        return Tensor._from_numpy(data.data, requires_grad=requires_grad, dtype=dtype)

    if isinstance(data, np.ndarray):
        if data.size == 0:
            raise ShapeError("tensor data must not be empty")
        return Tensor._from_numpy(data, requires_grad=requires_grad, dtype=dtype)

    if isinstance(data, (list, tuple)):
        shape = infer_shape(data)
        arr = np.asarray(data, dtype=dtype or DEFAULT_DTYPE).reshape(shape)
    else:
        infer_shape([data])
        arr = np.asarray([data], dtype=dtype or DEFAULT_DTYPE)

    return Tensor._from_numpy(arr, requires_grad=requires_grad, dtype=dtype or DEFAULT_DTYPE)


def zeros(shape: ShapeLike, requires_grad: bool = False, dtype: Any = DEFAULT_DTYPE) -> Tensor:
    """
    Return a tensor of the given shape filled with 0.
    """
    return Tensor(shape, requires_grad=requires_grad, dtype=dtype)


def ones(shape: ShapeLike, requires_grad: bool = False, dtype: Any = DEFAULT_DTYPE) -> Tensor:
    """
    Return a tensor of the given shape filled with 1.
    """
    return _filled(shape, 1, requires_grad, dtype)


def full(
    shape: ShapeLike, fill_value: float, requires_grad: bool = False, dtype: Any = DEFAULT_DTYPE
) -> Tensor:
    """
    Return a tensor of the given shape filled with `fill_value`.
    """
    return _filled(shape, fill_value, requires_grad, dtype)


def zeros_like(input: Tensor, requires_grad: bool = False) -> Tensor:
    """
    Return a tensor of the same shape and dtype as `input`, filled with 0.
    """
    return Tensor(input.shape, requires_grad=requires_grad, dtype=input.dtype)


def ones_like(input: Tensor, requires_grad: bool = False) -> Tensor:
    """
    Return a tensor of the same shape and dtype as `input`, filled with 1.
    """
    return _filled(input.shape, 1, requires_grad, input.dtype)


def rand(shape: ShapeLike, requires_grad: bool = False, dtype: Any = DEFAULT_DTYPE) -> Tensor:
    """
    Return a tensor filled with uniform random values in [0, 1).
    """
    shape = normalize_shape(shape)
    # sample in float32 directly; casting float64 samples can round up to 1.0
    sample_dtype = np.float32 if np.dtype(dtype) == np.float32 else np.float64
    arr = _generator.random(shape, dtype=sample_dtype)
    return Tensor._from_numpy(arr, requires_grad=requires_grad, dtype=dtype)


def _box_muller(shape: tuple[int, ...], mean: float, std: float) -> np.ndarray:
    u1 = _generator.random(shape)
    u2 = _generator.random(shape)
    # 1 - u maps [0, 1) onto (0, 1] so the log never sees 0
    z0 = np.sqrt(-2.0 * np.log(1.0 - u1)) * np.cos(2.0 * math.pi * u2)
    return mean + z0 * std


def randn(
    shape: ShapeLike,
    requires_grad: bool = False,
    mean: float = 0.0,
    std: float = 1.0,
    dtype: Any = DEFAULT_DTYPE,
) -> Tensor:
    """
    Return a tensor filled with normally distributed values.

    Samples are produced with the Box-Muller transform from two independent
    uniform samples in [0, 1).

    Parameters
    ----------
    shape : int | Sequence[int]
        Output shape.
    requires_grad : bool, optional
        Whether the tensor should track gradients.
    mean : float, optional
        Distribution mean. Defaults to 0.
    std : float, optional
        Standard deviation. Defaults to 1.
    """
    shape = normalize_shape(shape)
    return Tensor._from_numpy(
        _box_muller(shape, mean, std), requires_grad=requires_grad, dtype=dtype
    )


def linspace(
    start: float,
    end: float,
    steps: int,
    requires_grad: bool = False,
    dtype: Any = DEFAULT_DTYPE,
) -> Tensor:
    """
    Return a 1-D tensor of `steps` evenly spaced values from `start` to `end`.

    Both ends are inclusive. ``steps == 1`` yields ``[start]``.

    Raises
    ------
    ValueError
        If `steps` is smaller than 1.
    """
    steps = int(steps)
    if steps < 1:
        raise ValueError(f"linspace requires steps >= 1, got {steps}")
    if steps == 1:
        return Tensor._from_numpy(
            np.array([start], dtype=np.float64), requires_grad=requires_grad, dtype=dtype
        )

    step_size = (end - start) / (steps - 1)
    data = np.array([start + i * step_size for i in range(steps)], dtype=np.float64)
    return Tensor._from_numpy(data, requires_grad=requires_grad, dtype=dtype)
