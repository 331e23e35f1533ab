"""JSON schemas for persisted content trees and version records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from jsonschema import Draft7Validator

from .blocks import BLOCK_TYPES
from .model import COMPLETION_STATUSES, MAX_LEVEL, MIN_LEVEL, SECTION_STATUSES

__all__ = [
    "TREE_SCHEMA",
    "VERSION_SCHEMA",
    "SchemaIssue",
    "describe_issues",
    "validate_tree_payload",
    "validate_version_payload",
]

MAX_SCHEMA_ERRORS = 25

_DEFINITIONS: dict[str, Any] = {
    "block": {
        "type": "object",
        "required": ["id", "type"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "type": {"enum": sorted(BLOCK_TYPES)},
            "createdAt": {"type": "string"},
            "updatedAt": {"type": "string"},
        },
    },
    "metadata": {
        "type": "object",
        "properties": {
            "completionStatus": {"enum": list(COMPLETION_STATUSES)},
            "hasComments": {"type": "boolean"},
            "aiConfidence": {"type": "number"},
        },
        "additionalProperties": False,
    },
    "section": {
        "type": "object",
        "required": ["id", "title"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "type": {"const": "section"},
            "title": {"type": "string"},
            "level": {"type": "integer", "minimum": MIN_LEVEL, "maximum": MAX_LEVEL},
            "status": {"enum": list(SECTION_STATUSES)},
            "isLocked": {"type": "boolean"},
            "isCollapsed": {"type": "boolean"},
            "icon": {"type": ["string", "null"]},
            "blocks": {"type": "array", "items": {"$ref": "#/definitions/block"}},
            "children": {"type": "array", "items": {"$ref": "#/definitions/section"}},
            "metadata": {"$ref": "#/definitions/metadata"},
        },
    },
    "tree": {
        "type": "object",
        "required": ["sections"],
        "properties": {
            "sections": {"type": "array", "items": {"$ref": "#/definitions/section"}},
        },
    },
}

TREE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "ContentTree",
    "definitions": _DEFINITIONS,
    "$ref": "#/definitions/tree",
}

VERSION_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "ReportVersion",
    "definitions": _DEFINITIONS,
    "type": "object",
    "required": ["reportId", "versionNumber", "timestamp", "content"],
    "properties": {
        "reportId": {"type": "string"},
        "versionNumber": {"type": "integer", "minimum": 1},
        "timestamp": {"type": "string"},
        "label": {"type": ["string", "null"]},
        "kind": {"enum": ["save", "snapshot"]},
        "content": {"$ref": "#/definitions/tree"},
    },
}

_TREE_VALIDATOR = Draft7Validator(TREE_SCHEMA)
_VERSION_VALIDATOR = Draft7Validator(VERSION_SCHEMA)


@dataclass(frozen=True, slots=True)
class SchemaIssue:
    """One schema violation, located by a dotted path into the payload."""

    message: str
    path: str = ""

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


def validate_tree_payload(payload: Any) -> list[SchemaIssue]:
    """Return the schema issues found in a persisted content tree (empty when valid)."""

    return _collect(_TREE_VALIDATOR, payload)


def validate_version_payload(payload: Any) -> list[SchemaIssue]:
    return _collect(_VERSION_VALIDATOR, payload)


def _collect(validator: Draft7Validator, payload: Any) -> list[SchemaIssue]:
    issues: list[SchemaIssue] = []
    for error in validator.iter_errors(payload):
        issues.append(SchemaIssue(message=error.message, path=_format_schema_path(error.absolute_path)))
        if len(issues) >= MAX_SCHEMA_ERRORS:
            issues.append(SchemaIssue(message="Too many validation errors; stopping early."))
            break
    return issues


def _format_schema_path(path: Sequence[Any]) -> str:
    if not path:
        return ""
    components: list[str] = []
    for segment in path:
        if isinstance(segment, int):
            if components:
                components[-1] = f"{components[-1]}[{segment}]"
            else:
                components.append(f"[{segment}]")
        else:
            components.append(str(segment))
    return ".".join(filter(None, components))


def describe_issues(issues: Sequence[SchemaIssue], *, limit: int = 3) -> str:
    """Summarise issues for log lines and error messages."""

    shown = "; ".join(str(issue) for issue in issues[:limit])
    extra = len(issues) - limit
    return f"{shown} (+{extra} more)" if extra > 0 else shown
