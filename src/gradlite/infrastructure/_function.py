"""
Differentiable operation implementations.

This module contains the infrastructure-level implementations of the
differentiable operations, expressed in a function-style autograd API:

- Each operation is a `TensorFunction` subclass with `forward(ctx, ...)` and
  `backward(ctx, grad_out)` static methods.
- `forward` works on raw NumPy arrays and returns the raw output array.
- `backward` receives the upstream gradient as a Tensor and returns one
  gradient Tensor per operand, shaped like that operand.
- `TensorFunction.apply` is the single orchestration entry point. It
  validates operand types, runs `forward`, and attaches a graph node to the
  output only when an operand requires gradients and the calling task is not
  inside ``no_grad``.

Notes
-----
- Elementwise binary operations follow NumPy broadcasting. Their backward
  passes sum gradients back down to each operand's shape, so a number
  operand (a zero-rank broadcast) reduces to a scalar and is then dropped.
- Only the operands that require gradients are retained as graph parents.
"""

from __future__ import annotations

import numbers
from typing import Any, ClassVar, Optional, Sequence, Tuple

import numpy as np

from ..domain._errors import ShapeError, TensorTypeError
from ..domain._function import Function
from ._grad_mode import NO_GRAD
from .context._context_manager import in_context
from .tensor._shape import resolve_view_shape, sum_to_shape
from .tensor._tensor import Tensor
from .tensor._tensor_context import Context

Grads = Tuple[Optional[Tensor], ...]


def _is_number(x: Any) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, bool)


def _as_grad(arr: np.ndarray, shape: tuple[int, ...], dtype: np.dtype) -> Tensor:
    """
    Reduce `arr` to `shape` and wrap it as a gradient Tensor.
    """
    return Tensor._from_numpy(sum_to_shape(np.asarray(arr), shape), dtype=dtype)


class TensorFunction(Function):
    """
    Base class for differentiable operations on `Tensor`.

    Class attributes
    ----------------
    name : str
        Public operation name used in error messages.
    arity : int
        Number of leading positional arguments that are operands. Remaining
        positional and keyword arguments are passed to `forward` unchanged.
    number_positions : tuple[int, ...]
        0-based operand positions that also accept a plain number.
    """

    name: ClassVar[str] = ""
    arity: ClassVar[int] = 1
    number_positions: ClassVar[tuple[int, ...]] = ()

    @classmethod
    def _check_operands(cls, operands: Sequence[Any]) -> None:
        if len(operands) < cls.arity:
            raise TypeError(
                f"gradlite.{cls.name} expects {cls.arity} operands, got {len(operands)}"
            )
        for i, x in enumerate(operands):
            if isinstance(x, Tensor):
                continue
            allow_number = i in cls.number_positions
            if allow_number and _is_number(x):
                continue
            raise TensorTypeError(cls.name, i + 1, allow_number=allow_number)

    @classmethod
    def apply(cls, *args: Any, **params: Any) -> Tensor:
        """
        Run the operation and, when required, record it in the graph.

        Steps
        -----
        1. Validate operands (Tensor, or number where allowed).
        2. Run `forward` on the raw operand arrays.
        3. Track iff any operand requires gradients and the calling task is
           not inside ``no_grad``.
        4. If tracking, attach a `Context` referencing this class and the
           operands that require gradients; otherwise return a plain leaf.

        Raises
        ------
        TensorTypeError
            If an operand has an unsupported type.
        """
        operands = args[: cls.arity]
        extra = args[cls.arity :]
        cls._check_operands(operands)

        tensors = [x for x in operands if isinstance(x, Tensor)]
        track = any(t.requires_grad for t in tensors) and not in_context(NO_GRAD)

        ctx = Context(
            fn=cls,
            needs_input_grad=tuple(
                isinstance(x, Tensor) and x.requires_grad and track for x in operands
            ),
        )
        raw = [x.data if isinstance(x, Tensor) else x for x in operands]
        out_np = cls.forward(ctx, *raw, *extra, **params)

        out = Tensor._from_numpy(out_np, requires_grad=track, dtype=tensors[0].dtype)
        if not track:
            return out

        positions = [i for i, needed in enumerate(ctx.needs_input_grad) if needed]
        ctx.parents = tuple(operands[i] for i in positions)

        def backward_fn(grad_out: Tensor) -> Grads:
            grads = cls.backward(ctx, grad_out)
            return tuple(grads[i] for i in positions)

        ctx.backward_fn = backward_fn
        out._set_ctx(ctx)
        return out


class _ElementwiseBinaryFn(TensorFunction):
    arity = 2
    number_positions = (1,)

    @staticmethod
    def _save_shapes(ctx: Context, a: Any, b: Any) -> None:
        ctx.saved_meta["shapes"] = (np.shape(a), np.shape(b))


def _broadcast(op: str, fn, a: Any, b: Any) -> np.ndarray:
    try:
        return fn(a, b)
    except ValueError as e:
        raise ShapeError(
            f"gradlite.{op}: operands with shapes {np.shape(a)} and {np.shape(b)} "
            "cannot be broadcast together"
        ) from e


class AddFn(_ElementwiseBinaryFn):
    """
    Elementwise addition.

    Backward: d(a + b)/da = 1, d(a + b)/db = 1.
    """

    name = "add"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: Any) -> np.ndarray:
        _ElementwiseBinaryFn._save_shapes(ctx, a, b)
        return _broadcast("add", np.add, a, b)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sa, sb = ctx.saved_meta["shapes"]
        g = grad_out.data
        return (
            _as_grad(g, sa, grad_out.dtype) if ctx.needs_input_grad[0] else None,
            _as_grad(g, sb, grad_out.dtype) if ctx.needs_input_grad[1] else None,
        )


class SubFn(_ElementwiseBinaryFn):
    """
    Elementwise subtraction.

    Backward: d(a - b)/da = 1, d(a - b)/db = -1.
    """

    name = "sub"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: Any) -> np.ndarray:
        _ElementwiseBinaryFn._save_shapes(ctx, a, b)
        return _broadcast("sub", np.subtract, a, b)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sa, sb = ctx.saved_meta["shapes"]
        g = grad_out.data
        return (
            _as_grad(g, sa, grad_out.dtype) if ctx.needs_input_grad[0] else None,
            _as_grad(-g, sb, grad_out.dtype) if ctx.needs_input_grad[1] else None,
        )


class MulFn(_ElementwiseBinaryFn):
    """
    Elementwise multiplication.

    Backward: d(a * b)/da = b, d(a * b)/db = a.
    """

    name = "mul"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: Any) -> np.ndarray:
        _ElementwiseBinaryFn._save_shapes(ctx, a, b)
        # each gradient reads the other operand
        ctx.save_for_backward(
            a if ctx.needs_input_grad[1] else None,
            b if ctx.needs_input_grad[0] else None,
        )
        return _broadcast("mul", np.multiply, a, b)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sa, sb = ctx.saved_meta["shapes"]
        a, b = ctx.saved_arrays
        g = grad_out.data
        return (
            _as_grad(g * b, sa, grad_out.dtype) if ctx.needs_input_grad[0] else None,
            _as_grad(g * a, sb, grad_out.dtype) if ctx.needs_input_grad[1] else None,
        )


class DivFn(_ElementwiseBinaryFn):
    """
    Elementwise true division.

    Backward: d(a / b)/da = 1 / b, d(a / b)/db = -a / b^2.
    """

    name = "div"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: Any) -> np.ndarray:
        _ElementwiseBinaryFn._save_shapes(ctx, a, b)
        need = ctx.needs_input_grad
        ctx.save_for_backward(a if need[1] else None, b if need[0] or need[1] else None)
        return _broadcast("div", np.true_divide, a, b)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sa, sb = ctx.saved_meta["shapes"]
        a, b = ctx.saved_arrays
        g = grad_out.data
        ga = _as_grad(g / b, sa, grad_out.dtype) if ctx.needs_input_grad[0] else None
        gb = (
            _as_grad(-g * a / (b * b), sb, grad_out.dtype)
            if ctx.needs_input_grad[1]
            else None
        )
        return ga, gb


class PowFn(_ElementwiseBinaryFn):
    """
    Elementwise power ``a ** b``.

    Backward: d/da = b * a^(b - 1), d/db = a^b * ln(a).
    """

    name = "pow"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: Any) -> np.ndarray:
        _ElementwiseBinaryFn._save_shapes(ctx, a, b)
        out = _broadcast("pow", np.power, a, b)
        need = ctx.needs_input_grad
        # ln(a) feeds the exponent gradient, b only the base gradient
        ctx.save_for_backward(
            a if need[0] or need[1] else None,
            b if need[0] else None,
            out if need[1] else None,
        )
        return out

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sa, sb = ctx.saved_meta["shapes"]
        a, b, out = ctx.saved_arrays
        g = grad_out.data
        ga = (
            _as_grad(g * b * np.power(a, b - 1), sa, grad_out.dtype)
            if ctx.needs_input_grad[0]
            else None
        )
        gb = (
            _as_grad(g * out * np.log(a), sb, grad_out.dtype)
            if ctx.needs_input_grad[1]
            else None
        )
        return ga, gb


class NegFn(TensorFunction):
    """
    Elementwise negation.
    """

    name = "neg"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray) -> np.ndarray:
        return np.negative(a)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        return (Tensor._from_numpy(-grad_out.data, dtype=grad_out.dtype),)


class MatMulFn(TensorFunction):
    """
    Matrix multiplication of two 2-D tensors.

    If `a` is (n x m) and `b` is (m x p), the output is (n x p).

    Backward: dA = dOut @ B^T, dB = A^T @ dOut.
    """

    name = "mm"
    arity = 2

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        if a.ndim != 2 or b.ndim != 2:
            raise ShapeError(
                f"gradlite.mm expects 2-D tensors, got shapes {a.shape} and {b.shape}"
            )
        if a.shape[1] != b.shape[0]:
            raise ShapeError(
                f"gradlite.mm shape mismatch: {a.shape} @ {b.shape} "
                f"(inner dimensions {a.shape[1]} != {b.shape[0]})"
            )
        ctx.save_for_backward(
            a if ctx.needs_input_grad[1] else None,
            b if ctx.needs_input_grad[0] else None,
        )
        return a @ b

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        a, b = ctx.saved_arrays
        g = grad_out.data
        ga = Tensor._from_numpy(g @ b.T, dtype=grad_out.dtype) if ctx.needs_input_grad[0] else None
        gb = Tensor._from_numpy(a.T @ g, dtype=grad_out.dtype) if ctx.needs_input_grad[1] else None
        return ga, gb


class SqrtFn(TensorFunction):
    """
    Elementwise square root.

    Backward: d(sqrt(x))/dx = 0.5 / sqrt(x).
    """

    name = "sqrt"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray) -> np.ndarray:
        out = np.sqrt(a)
        ctx.save_for_backward(out)
        return out

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        (out,) = ctx.saved_arrays
        return (Tensor._from_numpy(grad_out.data * 0.5 / out, dtype=grad_out.dtype),)


class ViewFn(TensorFunction):
    """
    Reshape to a new shape with the same number of elements.

    Backward: reshape grad_out back to the input shape.
    """

    name = "view"

    @staticmethod
    def forward(ctx: Context, a: np.ndarray, *dims: Any) -> np.ndarray:
        shape = resolve_view_shape(a.shape, dims)
        ctx.saved_meta["input_shape"] = a.shape
        return a.reshape(shape)

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        shape = ctx.saved_meta["input_shape"]
        return (Tensor._from_numpy(grad_out.data.reshape(shape), dtype=grad_out.dtype),)


class AddcdivFn(TensorFunction):
    """
    Fused ``input + value * tensor1 / tensor2``.

    Backward:
        d/dinput   = 1
        d/dtensor1 = value / tensor2
        d/dtensor2 = -value * tensor1 / tensor2^2
    """

    name = "addcdiv"
    arity = 3

    @staticmethod
    def forward(
        ctx: Context,
        x: np.ndarray,
        t1: np.ndarray,
        t2: np.ndarray,
        value: float = 1,
    ) -> np.ndarray:
        if not _is_number(value):
            raise TypeError(f"gradlite.addcdiv value must be a number, got {value!r}")
        ctx.saved_meta["shapes"] = (x.shape, t1.shape, t2.shape)
        ctx.saved_meta["value"] = value
        need = ctx.needs_input_grad
        ctx.save_for_backward(t1 if need[2] else None, t2 if need[1] or need[2] else None)
        try:
            return x + value * (t1 / t2)
        except ValueError as e:
            raise ShapeError(
                f"gradlite.addcdiv: shapes {x.shape}, {t1.shape} and {t2.shape} "
                "cannot be broadcast together"
            ) from e

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Grads:
        sx, s1, s2 = ctx.saved_meta["shapes"]
        value = ctx.saved_meta["value"]
        t1, t2 = ctx.saved_arrays
        g = grad_out.data
        dt = grad_out.dtype
        need = ctx.needs_input_grad
        return (
            _as_grad(g, sx, dt) if need[0] else None,
            _as_grad(g * value / t2, s1, dt) if need[1] else None,
            _as_grad(-g * value * t1 / (t2 * t2), s2, dt) if need[2] else None,
        )
