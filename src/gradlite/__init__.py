"""
gradlite: a small differentiable-tensor runtime on top of NumPy.

The top-level namespace re-exports the public API:

- construction: `tensor`, `zeros`, `ones`, `full`, `rand`, `randn`,
  `zeros_like`, `ones_like`, `linspace`, `manual_seed`;
- operations: `add`, `sub`, `mul`, `div`, `pow`, `mm`, `sqrt`, `view`,
  `addcdiv`, `max`, `item`;
- gradient mode and task-scoped contexts: `no_grad`, `is_grad_enabled`,
  `ContextManager`, `enter_context`, `exit_context`, `in_context`;
- persistence: `save`, `asave`, `load` and their storage backends.
"""

import logging

from .domain._errors import (
    MalformedUnitError,
    MalformedUnitWarning,
    PersistencePrivilegeError,
    ScalarExtractionError,
    ShapeError,
    TensorTypeError,
)
from .domain._function import Function
from .domain._tensor import ITensor
from .infrastructure._function import (
    AddFn,
    AddcdivFn,
    DivFn,
    MatMulFn,
    MulFn,
    NegFn,
    PowFn,
    SqrtFn,
    SubFn,
    TensorFunction,
    ViewFn,
)
from .infrastructure._grad_mode import NO_GRAD, is_grad_enabled, no_grad
from .infrastructure._ops import (
    add,
    addcdiv,
    div,
    item,
    max,
    mm,
    mul,
    neg,
    pow,
    sqrt,
    sub,
    view,
)
from .infrastructure.context import (
    ContextManager,
    current_task,
    enter_context,
    exit_context,
    get_context_manager,
    in_context,
)
from .infrastructure.persistence import (
    FileSystemBackend,
    MemoryBackend,
    PersistenceConfig,
    asave,
    decode,
    encode,
    get_default_backend,
    get_default_config,
    load,
    save,
    set_default_backend,
    set_default_config,
)
from .infrastructure.tensor import (
    Tensor,
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

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
