"""
Saving and loading tensor groups.

`save` writes one unit per tensor into a freshly created group, assigning
ids 1..n in argument order. `load` reads a group back, skipping (with a
`MalformedUnitWarning`) any member that does not conform, and returns the
tensors in ascending id order regardless of how the backend enumerates them.
Each unit records its element dtype, so float64 tensors come back as
float64; units without one load as float32.

Payloads that reach `PersistenceConfig.chunk_threshold` characters are not
written atomically: the unit is created empty, an incremental editor is
opened, the caller waits `chunk_delay` seconds and the payload is then
written in a single edit. `save` blocks with `time.sleep`; `asave` awaits
`asyncio.sleep` so other tasks keep running meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
import time
import warnings
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import (
    MalformedUnitError,
    MalformedUnitWarning,
    PersistencePrivilegeError,
    TensorTypeError,
)
from ...domain._persistence import IPersistenceBackend
from ..tensor._factories import tensor
from ..tensor._tensor import Tensor
from ._backends import FileSystemBackend
from ._codec import decode, encode
from ._config import PersistenceConfig, get_default_config

logger = logging.getLogger(__name__)

_default_backend: Optional[IPersistenceBackend] = None


def get_default_backend() -> IPersistenceBackend:
    """
    Return the backend used when none is passed explicitly.

    Defaults to a `FileSystemBackend` rooted at the configured storage root.
    """
    global _default_backend
    if _default_backend is None:
        _default_backend = FileSystemBackend(get_default_config().storage_root)
    return _default_backend


def set_default_backend(backend: Optional[IPersistenceBackend]) -> None:
    """
    Replace the default backend. Passing None restores the filesystem default.
    """
    global _default_backend
    _default_backend = backend


def _as_tensor_list(obj: Any) -> List[Tensor]:
    if isinstance(obj, Tensor):
        return [obj]
    if isinstance(obj, (str, bytes)) or not isinstance(obj, Sequence):
        raise TensorTypeError("save", 1)
    items = list(obj)
    for i, t in enumerate(items):
        if not isinstance(t, Tensor):
            raise TensorTypeError("save", i + 1)
    return items


def _begin_save(
    obj: Any,
    name: Optional[str],
    backend: Optional[IPersistenceBackend],
    config: Optional[PersistenceConfig],
    overwrite: bool,
) -> Tuple[Any, Iterator[float]]:
    tensors = _as_tensor_list(obj)
    backend = backend if backend is not None else get_default_backend()
    config = config if config is not None else get_default_config()
    if not backend.can_write():
        raise PersistencePrivilegeError("save", repr(backend))
    payloads = [encode(t) for t in tensors]
    dtypes = [t.dtype.name for t in tensors]
    group = backend.create_group(config.group_name(name), overwrite=overwrite)
    return group, _write_units(backend, config, group, payloads, dtypes)


def _write_units(
    backend: IPersistenceBackend,
    config: PersistenceConfig,
    group: Any,
    payloads: List[str],
    dtypes: List[str],
) -> Iterator[float]:
    """
    Create and fill one unit per payload.

    Yields the chunk delay while an editor is open on a large unit; the
    caller waits that long before the generator resumes and writes it.
    """
    for i, (payload, dtype) in enumerate(zip(payloads, dtypes), start=1):
        unit = backend.create_unit(group, config.unit_name(i), i, dtype)
        if len(payload) >= config.chunk_threshold:
            logger.info(
                "payload of unit %d is %d characters; writing through the editor",
                i,
                len(payload),
            )
            with backend.open_editor(unit) as editor:
                yield config.chunk_delay
                editor.edit_text(payload)
        else:
            backend.write_unit(unit, payload)
    logger.debug("saved %d tensor(s) into %r", len(payloads), group)


def save(
    obj: Any,
    name: Optional[str] = None,
    *,
    backend: Optional[IPersistenceBackend] = None,
    config: Optional[PersistenceConfig] = None,
    overwrite: bool = False,
) -> Any:
    """
    Persist one tensor or an ordered collection of tensors as a group.

    Parameters
    ----------
    obj : Tensor | Sequence[Tensor]
        What to persist. Unit ids follow the sequence order, starting at 1.
    name : str, optional
        Group name prefix. Defaults to ``config.default_name``.
    backend : IPersistenceBackend, optional
        Storage backend. Defaults to `get_default_backend()`.
    config : PersistenceConfig, optional
        Naming and chunking settings. Defaults to `get_default_config()`.
    overwrite : bool, optional
        Replace an existing group of the same name instead of failing.

    Returns
    -------
    Any
        The backend's handle to the created group.

    Raises
    ------
    TensorTypeError
        If `obj` or one of its members is not a Tensor.
    PersistencePrivilegeError
        If the backend has no write access. Nothing is written.
    """
    group, steps = _begin_save(obj, name, backend, config, overwrite)
    for delay in steps:
        time.sleep(delay)
    return group


async def asave(
    obj: Any,
    name: Optional[str] = None,
    *,
    backend: Optional[IPersistenceBackend] = None,
    config: Optional[PersistenceConfig] = None,
    overwrite: bool = False,
) -> Any:
    """
    Coroutine variant of `save`.

    The chunked path awaits ``asyncio.sleep(config.chunk_delay)`` instead of
    blocking the event loop. Everything else matches `save`.
    """
    group, steps = _begin_save(obj, name, backend, config, overwrite)
    for delay in steps:
        await asyncio.sleep(delay)
    return group


def _unit_dtype(name: Optional[str], member: str) -> np.dtype:
    # units without a dtype header hold float32 data
    if name is None:
        return np.dtype(np.float32)
    try:
        dtype = np.dtype(name)
    except TypeError:
        raise MalformedUnitError(member, f"unknown dtype {name!r}") from None
    if not np.issubdtype(dtype, np.floating):
        raise MalformedUnitError(member, f"unsupported dtype {name!r}")
    return dtype


def load(
    group: Any,
    requires_grad: bool = False,
    *,
    backend: Optional[IPersistenceBackend] = None,
) -> List[Tensor]:
    """
    Load a group saved by `save` / `asave`.

    Parameters
    ----------
    group : Any
        Group handle or name, as accepted by the backend's `resolve_group`.
    requires_grad : bool, optional
        Flag applied to every rebuilt tensor.
    backend : IPersistenceBackend, optional
        Storage backend. Defaults to `get_default_backend()`.

    Returns
    -------
    list[Tensor]
        Leaf tensors in ascending unit id order.

    Notes
    -----
    Non-conforming members are reported with `MalformedUnitWarning` and
    skipped; they never abort the load.
    """
    backend = backend if backend is not None else get_default_backend()
    handle = backend.resolve_group(group)

    units: List[Tuple[int, np.ndarray, np.dtype]] = []
    for member in backend.members(handle):
        try:
            record = backend.read_unit(member)
            label = backend.describe(member)
            dtype = _unit_dtype(record.dtype, label)
            data = decode(record.payload, label)
        except MalformedUnitError as e:
            logger.debug("skipping member %s: %s", e.member, e.reason)
            warnings.warn(str(e), MalformedUnitWarning, stacklevel=2)
            continue
        units.append((record.unit_id, data, dtype))

    units.sort(key=lambda u: u[0])
    return [
        tensor(data, requires_grad=requires_grad, dtype=dtype) for _, data, dtype in units
    ]
