from typing import Any, Callable, Optional, Sequence, Type
from dataclasses import dataclass, field

import numpy as np

from ...domain._tensor import ITensor


@dataclass
class Context:
    """
    Graph node attached to a Tensor produced by a differentiable operation.

    A `Context` records the information required to compute gradients for an
    operation during backpropagation. The node owns references to its input
    tensors; tensors only hold an optional reference to the node that
    produced them, so the graph never forms an ownership cycle.

    Attributes
    ----------
    fn : Type[Function]
        The Function class whose `forward` produced the output.
    parents : Sequence[Tensor]
        The operands that require gradients. Operands that do not require
        gradients (and plain numbers) are not retained.
    backward_fn : Callable[[Tensor], Sequence[Optional[Tensor]]]
        Maps the gradient w.r.t. the output (`grad_out`) to gradients w.r.t.
        each `parents` entry, in the same order. Set by `apply` once the
        output is known to be tracked.
    needs_input_grad : tuple[bool, ...]
        Per-operand flag (numbers included) telling `backward` which
        gradients will actually be consumed.
    saved_arrays : list[np.ndarray]
        Raw arrays saved during the forward pass for use in backward.
    saved_meta : dict[str, Any]
        Non-array metadata required for backward (e.g., shapes, scalars).
    """

    fn: Optional[Type[Any]] = None
    parents: Sequence["ITensor"] = ()
    backward_fn: Optional[Callable[["ITensor"], Sequence[Optional["ITensor"]]]] = None
    needs_input_grad: tuple[bool, ...] = ()
    saved_arrays: list[np.ndarray] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, *arrays: np.ndarray) -> None:
        """
        Save arrays for use during the backward computation.

        Parameters
        ----------
        *arrays : np.ndarray
            Any number of arrays to be stored in `saved_arrays`.

        Notes
        -----
        Only save what `backward` reads; everything saved here lives as long
        as the output tensor's graph.
        """
        self.saved_arrays.extend(arrays)

    @property
    def name(self) -> str:
        """
        Return the producing Function's class name (``"<none>"`` if unset).
        """
        return self.fn.__name__ if self.fn is not None else "<none>"
