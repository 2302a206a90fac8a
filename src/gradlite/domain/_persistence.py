"""
Persistence backend interface definitions.

A backend provides the host-specific primitives used to physically store
tensor groups: creating a group, creating units tagged with an integer id,
writing a unit's payload atomically or through an incremental text editor,
and enumerating/reading the members of a group.

The persistence layer (`save` / `load`) only talks to backends through this
protocol, so the on-disk representation can be swapped (filesystem, memory,
or any other store) without touching encoding or ordering logic.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional, Protocol, Sequence, runtime_checkable


class UnitRecord(NamedTuple):
    """
    Contents of one persisted unit as read back from a backend.

    Attributes
    ----------
    unit_id : int
        Explicit ordering id, starting at 1 within a group.
    payload : str
        Encoded nested-array text.
    dtype : Optional[str]
        Element dtype name recorded at save time, or None when the unit
        carries no dtype.
    """

    unit_id: int
    payload: str
    dtype: Optional[str] = None


@runtime_checkable
class IUnitEditor(Protocol):
    """
    Incremental text editor opened on a single persistence unit.

    Editors are context managers; the edit is durable once the editor exits.
    """

    def edit_text(self, text: str) -> None:
        """
        Replace the unit's payload with `text`.
        """
        ...

    def __enter__(self) -> "IUnitEditor": ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> Any: ...


@runtime_checkable
class IPersistenceBackend(Protocol):
    """
    Storage primitives used by `save` and `load`.

    Notes
    -----
    - Group and unit handles are opaque to the persistence layer.
    - `read_unit` raises `MalformedUnitError` for members that are not units
      or whose id is missing/invalid; `load` turns this into a warning.
    """

    def can_write(self) -> bool:
        """
        Return True if this backend may create groups and units.
        """
        ...

    def create_group(self, name: str, *, overwrite: bool = False) -> Any:
        """
        Create a new, empty group and return its handle.
        """
        ...

    def resolve_group(self, group: Any) -> Any:
        """
        Turn a group name or handle into a handle suitable for `members`.
        """
        ...

    def create_unit(self, group: Any, name: str, unit_id: int, dtype: str) -> Any:
        """
        Create an empty unit tagged with `unit_id` and `dtype` inside `group`.
        """
        ...

    def write_unit(self, unit: Any, text: str) -> None:
        """
        Atomically replace the unit's payload with `text`.
        """
        ...

    def open_editor(self, unit: Any) -> IUnitEditor:
        """
        Open the unit for incremental text editing.
        """
        ...

    def members(self, group: Any) -> Sequence[Any]:
        """
        Return every member of the group, in storage order.
        """
        ...

    def read_unit(self, member: Any) -> UnitRecord:
        """
        Return the id, payload and dtype of a group member.
        """
        ...

    def describe(self, member: Any) -> str:
        """
        Return a human-readable name for a member (used in warnings).
        """
        ...
