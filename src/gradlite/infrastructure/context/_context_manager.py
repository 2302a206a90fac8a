"""
Task-scoped named context flags.

This module keeps track of which concurrent tasks are currently executing
inside a named context (for example ``"no_grad"``). A context answers the
question "is the *calling* task inside context X right now?", so two tasks
interleaving on the same interpreter never observe each other's flags.

Task identity
-------------
A task handle is obtained from the concurrency runtime by `current_task()`:

- inside a running asyncio event loop, the current ``asyncio.Task``;
- otherwise, the current ``threading.Thread``.

Every method also accepts an explicit ``task`` handle so callers that manage
their own scheduling can thread the identity through instead of relying on
the ambient one.

Registry lifecycle
------------------
``name -> set(task handles)``. An entry is created when the first task enters
a context and removed as soon as its set becomes empty, so the registry never
keeps unused names around.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from threading import RLock
from typing import Dict, Hashable, Optional, Set

logger = logging.getLogger(__name__)


def current_task() -> Hashable:
    """
    Return the opaque handle of the calling task.

    Returns
    -------
    Hashable
        The running ``asyncio.Task`` when called from a coroutine driven by an
        event loop, otherwise the current ``threading.Thread``.
    """
    try:
        task = asyncio.current_task()
    except RuntimeError:
        # no running event loop in this thread
        task = None
    if task is not None:
        return task
    return threading.current_thread()


class ContextManager:
    """
    Registry of named contexts keyed by task identity.

    Notes
    -----
    - `enter` is idempotent per task: entering twice marks the task once.
    - `exit` on a context the task never entered is a no-op.
    - Unknown names are simply "not entered"; `in_context` never raises.
    - Mutations are guarded by a re-entrant lock so preemptive threads see a
      consistent registry. Cooperative tasks never contend for it.
    """

    def __init__(self) -> None:
        self._states: Dict[str, Set[Hashable]] = {}
        self._lock = RLock()

    def enter(self, name: str, task: Optional[Hashable] = None) -> None:
        """
        Mark `task` (default: the calling task) as inside context `name`.
        """
        task = current_task() if task is None else task
        with self._lock:
            self._states.setdefault(name, set()).add(task)

    def exit(self, name: str, task: Optional[Hashable] = None) -> None:
        """
        Unmark `task` (default: the calling task) from context `name`.

        The context's entry is dropped once no task remains inside it.
        """
        task = current_task() if task is None else task
        with self._lock:
            tasks = self._states.get(name)
            if tasks is None:
                logger.debug("exit(%r) without a matching entry; ignoring", name)
                return
            tasks.discard(task)
            if not tasks:
                del self._states[name]

    def in_context(self, name: str, task: Optional[Hashable] = None) -> bool:
        """
        Return True iff `task` (default: the calling task) is inside `name`.
        """
        task = current_task() if task is None else task
        with self._lock:
            tasks = self._states.get(name)
            return tasks is not None and task in tasks

    def active_contexts(self) -> frozenset[str]:
        """
        Return the names that currently have at least one task inside them.
        """
        with self._lock:
            return frozenset(self._states)

    def __repr__(self) -> str:
        with self._lock:
            counts = {name: len(tasks) for name, tasks in self._states.items()}
        return f"ContextManager({counts})"


_default_manager = ContextManager()


def get_context_manager() -> ContextManager:
    """
    Return the process-wide registry used by gradient mode.
    """
    return _default_manager


def enter_context(name: str, task: Optional[Hashable] = None) -> None:
    """
    Enter `name` on the process-wide registry.
    """
    _default_manager.enter(name, task)


def exit_context(name: str, task: Optional[Hashable] = None) -> None:
    """
    Exit `name` on the process-wide registry.
    """
    _default_manager.exit(name, task)


def in_context(name: str, task: Optional[Hashable] = None) -> bool:
    """
    Query `name` on the process-wide registry.
    """
    return _default_manager.in_context(name, task)
