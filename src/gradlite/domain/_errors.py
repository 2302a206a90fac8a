"""
Error taxonomy for gradlite.

This module defines the exceptions raised at the public API boundary. Each
error derives from the closest built-in exception so callers that already
handle `TypeError` / `ValueError` / `PermissionError` keep working, while code
that wants to discriminate can catch the specific subclasses.

Errors are raised synchronously at the call site and are never retried or
recovered internally. The one exception to "fail fast" is loading persisted
groups: a non-conforming unit is reported through `MalformedUnitWarning` and
skipped so the rest of the group still loads.
"""

from __future__ import annotations

from typing import Optional


class TensorTypeError(TypeError):
    """
    Raised when an operand is not a Tensor (or number, where numbers are allowed).

    Attributes
    ----------
    op : str
        The public name of the operation (e.g., "add", "mm").
    position : int
        1-based position of the offending argument.
    """

    def __init__(self, op: str, position: int, allow_number: bool = False) -> None:
        """
        Initialize the TensorTypeError.

        Parameters
        ----------
        op : str
            Operation name used in the message.
        position : int
            1-based position of the offending argument.
        allow_number : bool, optional
            Whether the operation accepts a plain number at this position.
            Only affects the message.
        """
        expected = "an instance of the tensor class"
        if allow_number:
            expected += ", or of type number"
        super().__init__(f"input {position} of gradlite.{op} must be {expected}.")
        self.op = op
        self.position = position


class ShapeError(ValueError):
    """
    Raised for invalid or incompatible shapes.

    Covers reshape element-count mismatches, matrix-multiply contraction
    mismatches, non-rectangular literal data and malformed shape arguments.
    """


class ScalarExtractionError(ValueError):
    """
    Raised when a scalar value is requested from a tensor that does not hold
    exactly one element.
    """

    def __init__(self, shape: tuple[int, ...]) -> None:
        super().__init__(
            f"item() expects a tensor with exactly one element, got shape={shape}."
        )
        self.shape = shape


class PersistencePrivilegeError(PermissionError):
    """
    Raised when persistence is attempted on a backend without write access.

    No part of the group is written when this error is raised.
    """

    def __init__(self, op: str, backend: Optional[str] = None) -> None:
        where = f" ({backend})" if backend else ""
        super().__init__(
            f"gradlite.{op} can only be run with write access to the storage backend{where}."
        )
        self.op = op


class MalformedUnitError(ValueError):
    """
    Raised when a persisted unit does not conform to the persistence format.

    Attributes
    ----------
    member : str
        Human-readable description of the offending member.
    reason : str
        Why the member was rejected.
    """

    def __init__(self, member: str, reason: str) -> None:
        super().__init__(f"Malformed persistence unit {member!r}: {reason}")
        self.member = member
        self.reason = reason


class MalformedUnitWarning(UserWarning):
    """
    Warning emitted when a non-conforming member is skipped during load.
    """
