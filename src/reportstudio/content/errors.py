"""Typed failures raised by the content model and mutation API.

Every error carries a machine-readable code so that renderers and toolbars
can surface a non-fatal message without parsing strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for error codes attached to content failures."""

    SECTION_NOT_FOUND = "section_not_found"
    BLOCK_NOT_FOUND = "block_not_found"
    SECTION_LOCKED = "section_locked"
    TYPE_MISMATCH = "type_mismatch"
    UNKNOWN_BLOCK_TYPE = "unknown_block_type"
    INVALID_VALUE = "invalid_value"
    OUT_OF_BOUNDS = "out_of_bounds"
    DUPLICATE_ID = "duplicate_id"
    STORAGE_FAILED = "storage_failed"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass
class ContentError(Exception):
    """Base exception for content tree failures.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for UI notices and logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class NotFoundError(ContentError):
    """A referenced section or block id does not exist."""

    error_code: str = field(default=ErrorCode.SECTION_NOT_FOUND)
    message: str = field(default="Referenced item does not exist")
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def section(cls, section_id: str) -> "NotFoundError":
        return cls(
            error_code=ErrorCode.SECTION_NOT_FOUND,
            message=f"Section '{section_id}' not found",
            details={"section_id": section_id},
        )

    @classmethod
    def block(cls, section_id: str, block_id: str) -> "NotFoundError":
        return cls(
            error_code=ErrorCode.BLOCK_NOT_FOUND,
            message=f"Block '{block_id}' not found in section '{section_id}'",
            details={"section_id": section_id, "block_id": block_id},
        )


@dataclass
class LockedError(ContentError):
    """A mutation was attempted on a locked section."""

    error_code: str = field(default=ErrorCode.SECTION_LOCKED)
    message: str = field(default="Section is locked")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "warning"

    @classmethod
    def for_section(cls, section_id: str, title: str = "") -> "LockedError":
        label = f"'{title}'" if title else f"'{section_id}'"
        return cls(
            message=f"Section {label} is locked; unlock it before editing",
            details={"section_id": section_id},
        )


@dataclass
class TypeMismatchError(ContentError):
    """An update payload does not fit the target's discriminant or schema."""

    error_code: str = field(default=ErrorCode.TYPE_MISMATCH)
    message: str = field(default="Update payload does not match the block type")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class BoundsError(ContentError):
    """A requested position cannot be satisfied even after clamping."""

    error_code: str = field(default=ErrorCode.OUT_OF_BOUNDS)
    message: str = field(default="Requested position is out of bounds")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class IntegrityError(ContentError):
    """A content tree violates its structural invariants."""

    error_code: str = field(default=ErrorCode.DUPLICATE_ID)
    message: str = field(default="Content tree contains duplicate identifiers")
    details: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ErrorCode",
    "ContentError",
    "NotFoundError",
    "LockedError",
    "TypeMismatchError",
    "BoundsError",
    "IntegrityError",
]
