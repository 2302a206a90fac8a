from ._tensor import Tensor
from ._tensor_context import Context
from ._factories import (
    full,
    linspace,
    manual_seed,
    ones,
    ones_like,
    rand,
    randn,
    tensor,
    zeros,
    zeros_like,
)

__all__ = [
    Tensor.__name__,
    Context.__name__,
    full.__name__,
    linspace.__name__,
    manual_seed.__name__,
    ones.__name__,
    ones_like.__name__,
    rand.__name__,
    randn.__name__,
    tensor.__name__,
    zeros.__name__,
    zeros_like.__name__,
]
