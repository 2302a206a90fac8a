"""
Autograd function interface definitions.

This module defines the abstract base class for differentiable operations
used in the automatic differentiation system. Concrete subclasses of
`Function` implement both the forward computation and its corresponding
backward gradient computation.

This design is inspired by function-level autograd systems (e.g., PyTorch's
`autograd.Function`) while remaining lightweight and framework-agnostic.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ._tensor import ITensor


class Function(ABC):
    """
    Abstract base class for differentiable operations.

    A `Function` represents a single node in the computation graph and
    encapsulates both:
    - the forward computation on raw arrays
    - the backward (gradient) computation on tensors

    Subclasses must implement both `forward` and `backward` as static methods.
    Any intermediate values required for gradient computation should be stored
    on the provided `ctx` object during the forward pass.

    Notes
    -----
    - Methods are declared as `@staticmethod` to avoid implicit state on the
      function object itself.
    - The `ctx` argument acts as a per-invocation context, allowing safe reuse
      of `Function` classes across multiple computation graphs.
    - Graph construction (deciding whether the output is tracked) is not part
      of this interface; it belongs to `apply` in the infrastructure layer.
    """

    @staticmethod
    @abstractmethod
    def forward(ctx, *inputs: Any) -> Any:
        """
        Perform the forward computation.

        Parameters
        ----------
        ctx : Context
            A mutable context object used to store intermediate values
            required for gradient computation.
        *inputs : Any
            Raw operand arrays (numbers are passed through unchanged),
            followed by any non-tensor parameters of the operation.

        Returns
        -------
        Any
            The raw output array. Must not mutate the inputs.
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: ITensor) -> Sequence[Optional[ITensor]]:
        """
        Compute gradients with respect to the operands.

        Parameters
        ----------
        ctx : Context
            The context object populated during the forward pass.
        grad_out : Tensor
            Gradient of the loss with respect to the output tensor.

        Returns
        -------
        tuple[Tensor | None, ...]
            One gradient per operand, shaped like that operand. Entries may be
            None for operands that are plain numbers or do not require
            gradients.
        """
        ...
