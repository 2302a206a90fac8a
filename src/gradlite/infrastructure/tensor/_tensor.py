"""
Concrete Tensor implementation (NumPy backend).

This module provides the concrete `Tensor` that satisfies the domain-level
`ITensor` protocol. Storage is a C-contiguous NumPy array whose size always
equals the product of the tensor's shape.

Automatic differentiation is expressed by attaching an optional `Context`
(graph node) to tensors produced by differentiable operations. Graph nodes
are only ever attached by `Function.apply`; constructors always produce
leaves. `Tensor.backward()` walks the attached nodes in reverse topological
order and accumulates gradients into `.grad`.

Design notes
------------
- Arithmetic operators delegate to the functional API in `.._ops`, which in
  turn validates operand types and dispatches to `Function.apply`.
- Gradient accumulation writes NumPy arrays directly and never records graph
  history.
"""

from __future__ import annotations

from typing import Any, Optional, Union

import numpy as np

from ...domain._errors import ScalarExtractionError, ShapeError
from ...domain._tensor import ITensor
from ._shape import normalize_shape, numel
from ._tensor_context import Context

Number = Union[int, float]

DEFAULT_DTYPE = np.float32


class Tensor(ITensor):
    """
    Concrete tensor implementation (NumPy CPU backend).

    Parameters
    ----------
    shape : int | Sequence[int]
        Tensor shape. Every extent must be a positive integer.
    requires_grad : bool, optional
        Whether operations on this tensor should be tracked. Defaults to False.
    ctx : Optional[Context], optional
        Graph node for autograd traversal. Set internally by differentiable
        operations; a tensor that does not require gradients cannot carry one.
    dtype : np.dtype, optional
        Element dtype. Defaults to np.float32.

    Notes
    -----
    - `_data` is a NumPy ndarray of dtype `self._dtype`, zero-initialized.
    - Gradients (if any) are stored as another `Tensor` in `_grad`.
    """

    def __init__(
        self,
        shape,
        *,
        requires_grad: bool = False,
        ctx: Optional[Context] = None,
        dtype: Any = DEFAULT_DTYPE,
    ) -> None:
        self._shape: tuple[int, ...] = normalize_shape(shape)
        self._dtype = np.dtype(dtype)
        self._data: np.ndarray = np.zeros(self._shape, dtype=self._dtype)

        # --- autograd fields ---
        self._requires_grad: bool = bool(requires_grad)
        self._grad: Optional["Tensor"] = None
        self._ctx: Optional[Context] = None
        if ctx is not None:
            self._set_ctx(ctx)

    @classmethod
    def _from_numpy(
        cls,
        arr: Any,
        *,
        requires_grad: bool = False,
        dtype: Any = None,
    ) -> "Tensor":
        """
        Construct a leaf Tensor from a NumPy array.

        This is a low-level factory method used by constructors and
        differentiable operations. The input is copied into the tensor's own
        storage. A zero-rank array becomes a tensor of shape ``(1,)``.

        Parameters
        ----------
        arr : array-like
            Source data. Its shape determines the tensor shape.
        requires_grad : bool, optional
            Whether the resulting tensor should track gradients.
        dtype : np.dtype, optional
            Target dtype. Defaults to the array's dtype for floating input,
            otherwise float32.

        Returns
        -------
        Tensor
            A new leaf tensor.
        """
        a = np.asarray(arr)
        if dtype is None:
            dtype = a.dtype if np.issubdtype(a.dtype, np.floating) else DEFAULT_DTYPE
        if a.ndim == 0:
            a = a.reshape(1)

        t = cls.__new__(cls)
        t._shape = normalize_shape(a.shape)
        t._dtype = np.dtype(dtype)
        t._data = np.array(a, dtype=t._dtype, order="C", copy=True)
        t._requires_grad = bool(requires_grad)
        t._grad = None
        t._ctx = None
        return t

    def __repr__(self) -> str:
        """
        Return a human-readable string representation of the tensor.
        """
        grad_fn = f", grad_fn=<{self._ctx.name}>" if self._ctx is not None else ""
        return (
            f"Tensor(shape={self._shape}, dtype={self._dtype}, "
            f"requires_grad={self._requires_grad}{grad_fn})"
        )

    # ----------------------------
    # Storage and shape
    # ----------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the tensor shape.
        """
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        """
        Return the element dtype of this tensor.
        """
        return self._dtype

    @property
    def data(self) -> np.ndarray:
        """
        Return the underlying storage array.

        Notes
        -----
        The array is shared with the tensor; writing into it changes the
        tensor without recording graph history.
        """
        return self._data

    @property
    def ndim(self) -> int:
        return len(self._shape)

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.
        """
        return numel(self._shape)

    def __len__(self) -> int:
        return self._shape[0]

    def to_numpy(self) -> np.ndarray:
        """
        Return the backing NumPy array (shared, not copied).
        """
        return self._data

    def tolist(self) -> list:
        """
        Return the tensor contents as nested Python lists.
        """
        return self._data.tolist()

    def copy_from_numpy(self, arr: Any) -> None:
        """
        Copy data from an array-like into this tensor (in-place).

        Raises
        ------
        ShapeError
            If the array shape does not match this tensor's shape.
        """
        arr_nd = np.asarray(arr, dtype=self._dtype)
        if arr_nd.shape != self._shape:
            raise ShapeError(
                f"Shape mismatch: tensor {self._shape} vs array {arr_nd.shape}"
            )
        self._data[...] = arr_nd

    def fill(self, value: float) -> None:
        """
        Fill the tensor with a scalar value (in-place).
        """
        self._data.fill(value)

    def item(self) -> float:
        """
        Return the value of a single-element tensor as a Python float.

        Raises
        ------
        ScalarExtractionError
            If the tensor does not contain exactly one element.
        """
        if self.numel() != 1:
            raise ScalarExtractionError(self._shape)
        return float(self._data.reshape(-1)[0])

    # ----------------------------
    # Autograd fields
    # ----------------------------
    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether operations on this tensor should be tracked.
        """
        return self._requires_grad

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        """
        Enable or disable gradient tracking on a leaf tensor.

        Raises
        ------
        RuntimeError
            If tracking is disabled on a tensor that carries a graph node;
            use `detach()` instead.
        """
        if not value and self._ctx is not None:
            raise RuntimeError(
                "requires_grad can only be disabled on leaf tensors; use detach()."
            )
        self._requires_grad = bool(value)

    @property
    def grad(self) -> Optional["Tensor"]:
        """
        Return the accumulated gradient, or None if not computed or cleared.
        """
        return self._grad

    @property
    def is_leaf(self) -> bool:
        """
        Return True if this tensor has no graph node.
        """
        return self._ctx is None

    @property
    def grad_fn(self) -> Optional[type]:
        """
        Return the Function class that produced this tensor, if tracked.
        """
        return self._ctx.fn if self._ctx is not None else None

    def zero_grad(self) -> None:
        """
        Clear the stored gradient.
        """
        self._grad = None

    def detach(self) -> "Tensor":
        """
        Return a leaf copy of this tensor that does not require gradients.
        """
        return Tensor._from_numpy(self._data, requires_grad=False, dtype=self._dtype)

    def _set_ctx(self, ctx: Optional[Context]) -> None:
        """
        Attach or detach the graph node.

        Notes
        -----
        Internal hook for `Function.apply`. A tensor that does not require
        gradients never carries a graph node.
        """
        if ctx is not None and not self._requires_grad:
            raise RuntimeError("cannot attach a graph node to a tensor without requires_grad")
        self._ctx = ctx

    def _get_ctx(self) -> Optional[Context]:
        """
        Return the graph node attached to this tensor, if any.
        """
        return self._ctx

    def _accumulate_grad_(self, g: np.ndarray) -> None:
        """
        In-place accumulate gradient array `g` into `self.grad`.
        """
        if g.shape != self._shape:
            raise ShapeError(f"Grad shape mismatch: {self._shape} vs {g.shape}")

        if self._grad is None:
            self._grad = Tensor._from_numpy(g, requires_grad=False, dtype=self._dtype)
            return

        # Add underlying numpy arrays directly (avoid creating autograd edges)
        self._grad._data[...] = self._grad._data + g

    def backward(self, grad_out: Optional["Tensor"] = None) -> None:
        """
        Backpropagate gradients from this tensor through the autograd graph.

        Parameters
        ----------
        grad_out : Optional[Tensor], optional
            Gradient w.r.t. this tensor. If omitted, this tensor must hold a
            single element and the gradient is assumed to be 1.

        Raises
        ------
        RuntimeError
            If this tensor does not require gradients.
        ValueError
            If grad_out is None and this tensor has more than one element, or
            grad_out's shape differs from this tensor's shape.

        Notes
        -----
        - Gradients are accumulated into `.grad` of every reachable tensor
          with `requires_grad=True`.
        - Traversal is iterative, so long chains do not hit the recursion
          limit.
        """
        if not self._requires_grad:
            raise RuntimeError("backward() called on a tensor that does not require grad")

        if grad_out is None:
            if self.numel() != 1:
                raise ValueError(
                    "grad_out must be provided for non-scalar tensors. "
                    f"Got shape={self._shape}."
                )
            seed = np.ones(self._shape, dtype=self._dtype)
        else:
            if not isinstance(grad_out, Tensor):
                raise TypeError(f"grad_out must be a Tensor, got {type(grad_out)!r}")
            if grad_out.shape != self._shape:
                raise ValueError(
                    f"grad_out shape mismatch: expected {self._shape}, got {grad_out.shape}"
                )
            seed = np.array(grad_out.data, dtype=self._dtype, copy=True)

        # Build reverse topological order of nodes reachable from `self`
        topo: list[Tensor] = []
        visited: set[int] = set()
        stack: list[tuple[Tensor, bool]] = [(self, False)]
        while stack:
            t, expanded = stack.pop()
            if expanded:
                topo.append(t)
                continue
            if id(t) in visited:
                continue
            visited.add(id(t))
            stack.append((t, True))
            ctx = t._ctx
            if ctx is not None:
                for p in ctx.parents:
                    if id(p) not in visited:
                        stack.append((p, False))

        # Map from tensor id -> accumulated gradient array
        grads: dict[int, np.ndarray] = {id(self): seed}

        # Traverse in reverse topo order (from outputs back to leaves)
        for t in reversed(topo):
            ctx = t._ctx
            grad_t = grads.get(id(t))
            if ctx is None or grad_t is None:
                continue

            g_tensor = Tensor._from_numpy(grad_t, requires_grad=False, dtype=t.dtype)
            parent_grads = ctx.backward_fn(g_tensor)
            if len(parent_grads) != len(ctx.parents):
                raise RuntimeError(
                    "backward_fn must return one grad per parent. "
                    f"Got {len(parent_grads)} grads for {len(ctx.parents)} parents."
                )

            for parent, g in zip(ctx.parents, parent_grads):
                if g is None:
                    continue
                g_arr = g.data if isinstance(g, Tensor) else np.asarray(g)
                if g_arr.shape != parent.shape:
                    raise ValueError(
                        f"Gradient shape mismatch for parent: expected "
                        f"{parent.shape}, got {g_arr.shape}"
                    )
                pid = id(parent)
                if pid in grads:
                    grads[pid] = grads[pid] + g_arr
                else:
                    grads[pid] = np.array(g_arr, copy=True)

        for t in topo:
            g = grads.get(id(t))
            if g is not None and t.requires_grad:
                t._accumulate_grad_(g)

    # ----------------------------
    # Operators (delegate to the functional API)
    # ----------------------------
    def __add__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .._ops import add

        return add(self, other)

    def __radd__(self, other: Number) -> "Tensor":
        from .._ops import add

        return add(self, other)

    def __sub__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .._ops import sub

        return sub(self, other)

    def __rsub__(self, other: Number) -> "Tensor":
        from .._ops import add, neg

        return add(neg(self), other)

    def __mul__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .._ops import mul

        return mul(self, other)

    def __rmul__(self, other: Number) -> "Tensor":
        from .._ops import mul

        return mul(self, other)

    def __truediv__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .._ops import div

        return div(self, other)

    def __rtruediv__(self, other: Number) -> "Tensor":
        from .._ops import mul, pow

        return mul(pow(self, -1), other)

    def __pow__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .._ops import pow

        return pow(self, other)

    def __matmul__(self, other: "Tensor") -> "Tensor":
        from .._ops import mm

        return mm(self, other)

    def __neg__(self) -> "Tensor":
        from .._ops import neg

        return neg(self)

    def view(self, *dims: Any) -> "Tensor":
        """
        Return a tensor with the same data and a different shape.
        """
        from .._ops import view

        return view(self, *dims)

    def sqrt(self) -> "Tensor":
        """
        Elementwise square root.
        """
        from .._ops import sqrt

        return sqrt(self)

    def max(self) -> "Tensor":
        """
        Return a detached single-element tensor holding the maximum value.
        """
        from .._ops import max

        return max(self)
