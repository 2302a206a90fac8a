"""
Public functional operation API.

Each wrapper dispatches to the corresponding `TensorFunction.apply`, which
performs operand type validation before any computation. `max` and `item`
are not differentiable and never touch the graph.
"""

from __future__ import annotations

from typing import Any, Union

import numpy as np

from ..domain._errors import TensorTypeError
from ._function import (
    AddFn,
    AddcdivFn,
    DivFn,
    MatMulFn,
    MulFn,
    NegFn,
    PowFn,
    SqrtFn,
    SubFn,
    ViewFn,
)
from .tensor._tensor import Tensor

Number = Union[int, float]


def add(input: Tensor, other: Union[Tensor, Number]) -> Tensor:
    """
    Return ``input + other`` elementwise.
    """
    return AddFn.apply(input, other)


def sub(input: Tensor, other: Union[Tensor, Number]) -> Tensor:
    """
    Return ``input - other`` elementwise.
    """
    return SubFn.apply(input, other)


def mul(input: Tensor, other: Union[Tensor, Number]) -> Tensor:
    """
    Return ``input * other`` elementwise.
    """
    return MulFn.apply(input, other)


def div(input: Tensor, other: Union[Tensor, Number]) -> Tensor:
    """
    Return ``input / other`` elementwise.
    """
    return DivFn.apply(input, other)


def pow(input: Tensor, other: Union[Tensor, Number]) -> Tensor:
    """
    Return ``input ** other`` elementwise.
    """
    return PowFn.apply(input, other)


def neg(input: Tensor) -> Tensor:
    return NegFn.apply(input)


def mm(input: Tensor, mat2: Tensor) -> Tensor:
    """
    Matrix multiplication of the matrices `input` and `mat2`.

    If `input` is (n x m) and `mat2` is (m x p), the output is (n x p).

    Raises
    ------
    ShapeError
        If either operand is not 2-D or the inner dimensions differ.
    """
    return MatMulFn.apply(input, mat2)


def sqrt(input: Tensor) -> Tensor:
    """
    Elementwise square root.
    """
    return SqrtFn.apply(input)


def view(input: Tensor, *dims: Any) -> Tensor:
    """
    Return a tensor with the same data as `input` but a different shape.

    Dims may be given separately (``view(t, 2, 3)``) or as one sequence
    (``view(t, (2, 3))``); one of them may be -1.

    Raises
    ------
    ShapeError
        If the element count of the target shape differs from the input's.
    """
    return ViewFn.apply(input, *dims)


def addcdiv(input: Tensor, tensor1: Tensor, tensor2: Tensor, value: Number = 1) -> Tensor:
    """
    Return ``input + value * tensor1 / tensor2``.
    """
    return AddcdivFn.apply(input, tensor1, tensor2, value=value)


def max(input: Tensor) -> Tensor:
    """
    Return a single-element tensor holding the maximum value of `input`.

    Notes
    -----
    Not differentiable: the result is always a detached leaf with
    ``requires_grad=False``.
    """
    if not isinstance(input, Tensor):
        raise TensorTypeError("max", 1)
    value = np.max(input.data)
    return Tensor._from_numpy(
        np.array([value], dtype=input.dtype), requires_grad=False, dtype=input.dtype
    )


def item(input: Tensor) -> float:
    """
    Return the value of a single-element tensor as a Python float.

    Raises
    ------
    ScalarExtractionError
        If `input` does not hold exactly one element.
    """
    if not isinstance(input, Tensor):
        raise TensorTypeError("item", 1)
    return input.item()

