"""
Gradient suppression scope (``no_grad``).

While the calling task is inside the ``no_grad`` context, every differentiable
operation it runs produces a detached leaf (``requires_grad=False``, no graph
node), regardless of its inputs' flags. The suppression is scoped to the task
that entered it; other tasks keep tracking gradients.

Usage
-----
Run a block directly::

    result = no_grad(lambda: add(a, b))

Or as a context manager / decorator::

    with no_grad():
        out = add(a, b)

    @no_grad()
    def evaluate(x): ...

The context is exited on every path out of the scope, including exceptions.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Hashable, Optional, TypeVar

from .context._context_manager import current_task, get_context_manager

NO_GRAD = "no_grad"

R = TypeVar("R")


class _NoGradScope:
    """
    Scope guard entering ``no_grad`` for one task.

    The scope only exits the context if it was the one that entered it, so a
    nested ``no_grad`` does not re-enable tracking for the enclosing scope.
    """

    def __init__(self, task: Optional[Hashable] = None) -> None:
        self._manager = get_context_manager()
        self._task = task
        self._entered_task: Optional[Hashable] = None
        self._owns_entry = False

    def __enter__(self) -> "_NoGradScope":
        task = current_task() if self._task is None else self._task
        self._owns_entry = not self._manager.in_context(NO_GRAD, task)
        self._manager.enter(NO_GRAD, task)
        self._entered_task = task
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._owns_entry:
            self._manager.exit(NO_GRAD, self._entered_task)
        self._entered_task = None
        self._owns_entry = False
        # propagate exceptions
        return False

    def __call__(self, fn: Callable[..., R]) -> Callable[..., R]:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> R:
            with _NoGradScope(self._task):
                return fn(*args, **kwargs)

        return wrapper


def no_grad(
    block: Optional[Callable[[], R]] = None,
    *,
    task: Optional[Hashable] = None,
) -> Any:
    """
    Run `block` with gradient tracking suppressed for the calling task.

    Parameters
    ----------
    block : Callable[[], Any], optional
        Zero-argument callable to run inside the scope. If omitted, a scope
        object usable as a context manager or decorator is returned instead.
    task : Hashable, optional
        Explicit task handle. Defaults to the calling task. Tracking is
        suppressed for the named task, not for the caller.

    Returns
    -------
    Any
        The block's return value, or the scope object when `block` is None.
    """
    scope = _NoGradScope(task)
    if block is None:
        return scope
    with scope:
        return block()


def is_grad_enabled(task: Optional[Hashable] = None) -> bool:
    """
    Return True if `task` (default: the calling task) is outside ``no_grad``.
    """
    return not get_context_manager().in_context(NO_GRAD, task)
