"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the minimal properties required for
tensors to participate in computation graphs and persistence.

Notes
-----
`ITensor` is runtime-checkable, but API boundaries check against the concrete
`Tensor` class. The protocol exists so domain code (function protocol,
persistence backends) can type against tensors without importing NumPy.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Union, runtime_checkable

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is an n-dimensional array of numbers that optionally
    participates in automatic differentiation.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the shape of the tensor.

        Returns
        -------
        tuple[int, ...]
            Per-dimension extents; every entry is a positive integer.
        """
        ...

    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether operations on this tensor should be tracked.

        Returns
        -------
        bool
            True if gradients should be tracked/accumulated, False otherwise.
        """
        ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """
        Return the accumulated gradient, or None before any backward pass.
        """
        ...

    @property
    def is_leaf(self) -> bool:
        """
        Return True if the tensor has no attached graph node.
        """
        ...

    def numel(self) -> int:
        """
        Return the number of elements (product of `shape`).
        """
        ...

    def to_numpy(self) -> Any:
        """
        Return the backing array.
        """
        ...

    def tolist(self) -> Any:
        """
        Return the contents as nested Python lists mirroring `shape`.
        """
        ...

    def backward(self, grad_out: Optional["ITensor"] = None) -> None:
        """
        Backpropagate gradients from this tensor through the graph.
        """
        ...
