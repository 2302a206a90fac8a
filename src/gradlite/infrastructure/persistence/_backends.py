"""
Storage backends for persisted tensor groups.

Two implementations of `IPersistenceBackend` are provided:

- `FileSystemBackend`: a group is a directory, a unit is a ``.rdata`` text
  file whose first line carries the unit id (``# id: <n>``), whose second
  line carries the element dtype (``# dtype: <name>``) and whose remainder
  is the encoded payload.
- `MemoryBackend`: an in-process store with the same contract, useful for
  tests and for environments without a writable filesystem.

Backends never decide ordering; `load` sorts units by their id.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ...domain._errors import MalformedUnitError
from ...domain._persistence import UnitRecord

logger = logging.getLogger(__name__)

UNIT_EXTENSION = ".rdata"
_ID_HEADER = re.compile(r"^# id: (\d+)$")
_DTYPE_HEADER = re.compile(r"^# dtype: (\w+)$")


def _header(unit_id: int, dtype: Optional[str]) -> str:
    text = f"# id: {int(unit_id)}\n"
    if dtype is not None:
        text += f"# dtype: {dtype}\n"
    return text


def _split_header(text: str, member: str) -> UnitRecord:
    first, _, rest = text.partition("\n")
    match = _ID_HEADER.match(first)
    if match is None:
        raise MalformedUnitError(member, "missing or invalid id header")
    dtype = None
    second, sep, tail = rest.partition("\n")
    dtype_match = _DTYPE_HEADER.match(second)
    if dtype_match is not None and sep:
        dtype, rest = dtype_match.group(1), tail
    return UnitRecord(int(match.group(1)), rest, dtype)


class _FileUnitEditor:
    """
    Incremental editor over a unit file.

    The file is opened in place; `edit_text` rewrites the payload region that
    follows the id and dtype headers and truncates whatever was there
    before.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._offset = 0

    def __enter__(self) -> "_FileUnitEditor":
        self._fh = open(self._path, "r+", encoding="utf-8", newline="")
        header = self._fh.readline()
        if not _ID_HEADER.match(header.rstrip("\n")):
            self._fh.close()
            self._fh = None
            raise MalformedUnitError(str(self._path), "missing id header")
        self._offset = self._fh.tell()
        line = self._fh.readline()
        if line.endswith("\n") and _DTYPE_HEADER.match(line.rstrip("\n")):
            self._offset = self._fh.tell()
        return self

    def edit_text(self, text: str) -> None:
        if self._fh is None:
            raise RuntimeError("editor is not open")
        self._fh.seek(self._offset)
        self._fh.write(text)
        self._fh.truncate()
        self._fh.flush()
        os.fsync(self._fh.fileno())

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        return False


class FileSystemBackend:
    """
    Filesystem-backed persistence.

    Parameters
    ----------
    root : str | Path
        Directory under which groups are created.
    writable : bool, optional
        Set to False to open the store read-only; `save` then fails with
        `PersistencePrivilegeError` before touching the disk.
    """

    def __init__(self, root: Union[str, Path] = ".", *, writable: bool = True) -> None:
        self._root = Path(root)
        self._writable = bool(writable)

    @property
    def root(self) -> Path:
        return self._root

    def __repr__(self) -> str:
        return f"FileSystemBackend(root={str(self._root)!r}, writable={self._writable})"

    def can_write(self) -> bool:
        if not self._writable:
            return False
        # nearest existing ancestor decides whether we may create the root
        ancestor = self._root
        while not ancestor.exists():
            if ancestor.parent == ancestor:
                return False
            ancestor = ancestor.parent
        return ancestor.is_dir() and os.access(ancestor, os.W_OK)

    def create_group(self, name: str, *, overwrite: bool = False) -> Path:
        group = self._root / name
        if group.exists():
            if not overwrite:
                raise FileExistsError(f"Group already exists: {group}")
            for child in group.iterdir():
                if child.is_file() and child.suffix == UNIT_EXTENSION:
                    child.unlink()
        group.mkdir(parents=True, exist_ok=True)
        logger.debug("created group %s", group)
        return group

    def resolve_group(self, group: Any) -> Path:
        path = Path(group)
        if not path.is_absolute() and not path.exists():
            path = self._root / path
        if not path.is_dir():
            raise FileNotFoundError(f"Group not found: {group}")
        return path

    def create_unit(self, group: Path, name: str, unit_id: int, dtype: str) -> Path:
        path = Path(group) / f"{name}{UNIT_EXTENSION}"
        path.write_text(_header(unit_id, dtype), encoding="utf-8")
        return path

    def write_unit(self, unit: Path, text: str) -> None:
        unit = Path(unit)
        record = self.read_unit(unit)
        # write beside the target and swap it in
        fd, tmp = tempfile.mkstemp(dir=unit.parent, prefix=".tmp_", suffix=".part")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(_header(record.unit_id, record.dtype))
                fh.write(text)
            os.replace(tmp, unit)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def open_editor(self, unit: Path) -> _FileUnitEditor:
        return _FileUnitEditor(Path(unit))

    def members(self, group: Path) -> List[Path]:
        return list(Path(group).iterdir())

    def read_unit(self, member: Any) -> UnitRecord:
        path = Path(member)
        if not path.is_file() or path.suffix != UNIT_EXTENSION:
            raise MalformedUnitError(path.name, f"not a {UNIT_EXTENSION} unit")
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedUnitError(path.name, f"not valid UTF-8 text ({e.reason})") from e
        return _split_header(text, path.name)

    def describe(self, member: Any) -> str:
        return Path(member).name


@dataclass
class MemoryUnit:
    """
    A unit stored by `MemoryBackend`.
    """

    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    source: str = ""


@dataclass
class MemoryGroup:
    """
    A group stored by `MemoryBackend`.

    `children` is the storage order; it may hold arbitrary objects, which
    `load` treats as non-conforming members.
    """

    name: str
    children: List[Any] = field(default_factory=list)


class _MemoryUnitEditor:
    def __init__(self, unit: MemoryUnit) -> None:
        self._unit = unit
        self._open = False

    def __enter__(self) -> "_MemoryUnitEditor":
        self._open = True
        return self

    def edit_text(self, text: str) -> None:
        if not self._open:
            raise RuntimeError("editor is not open")
        self._unit.source = text

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self._open = False
        return False


class MemoryBackend:
    """
    In-process persistence store.

    Parameters
    ----------
    writable : bool, optional
        Set to False to emulate a store without write privilege.
    """

    def __init__(self, *, writable: bool = True) -> None:
        self._writable = bool(writable)
        self.groups: Dict[str, MemoryGroup] = {}

    def __repr__(self) -> str:
        return f"MemoryBackend(groups={sorted(self.groups)}, writable={self._writable})"

    def can_write(self) -> bool:
        return self._writable

    def create_group(self, name: str, *, overwrite: bool = False) -> MemoryGroup:
        if name in self.groups and not overwrite:
            raise FileExistsError(f"Group already exists: {name}")
        group = MemoryGroup(name=name)
        self.groups[name] = group
        return group

    def resolve_group(self, group: Any) -> MemoryGroup:
        if isinstance(group, MemoryGroup):
            return group
        try:
            return self.groups[str(group)]
        except KeyError:
            raise FileNotFoundError(f"Group not found: {group}") from None

    def create_unit(
        self, group: MemoryGroup, name: str, unit_id: int, dtype: str
    ) -> MemoryUnit:
        unit = MemoryUnit(name=name, attributes={"id": int(unit_id), "dtype": str(dtype)})
        group.children.append(unit)
        return unit

    def write_unit(self, unit: MemoryUnit, text: str) -> None:
        unit.source = text

    def open_editor(self, unit: MemoryUnit) -> _MemoryUnitEditor:
        return _MemoryUnitEditor(unit)

    def members(self, group: MemoryGroup) -> List[Any]:
        return list(group.children)

    def read_unit(self, member: Any) -> UnitRecord:
        if not isinstance(member, MemoryUnit):
            raise MalformedUnitError(self.describe(member), "not a unit")
        unit_id = member.attributes.get("id")
        if isinstance(unit_id, bool) or not isinstance(unit_id, int):
            raise MalformedUnitError(member.name, f"missing or invalid id {unit_id!r}")
        if not isinstance(member.source, str):
            raise MalformedUnitError(member.name, "source is not text")
        dtype = member.attributes.get("dtype")
        if dtype is not None and not isinstance(dtype, str):
            raise MalformedUnitError(member.name, f"invalid dtype {dtype!r}")
        return UnitRecord(unit_id, member.source, dtype)

    def describe(self, member: Any) -> str:
        name: Optional[str] = getattr(member, "name", None)
        return name if name is not None else repr(member)
