"""Structured report content: block registry, section tree and mutation API."""

from .blocks import (
    BLOCK_TYPES,
    Block,
    apply_block_update,
    block_fields,
    block_from_dict,
    block_to_dict,
    clone_block,
    create_default_block,
)
from .errors import (
    BoundsError,
    ContentError,
    ErrorCode,
    IntegrityError,
    LockedError,
    NotFoundError,
    TypeMismatchError,
)
from .export import ExportOptions, ExportRequest, build_export_request
from .model import (
    ContentTree,
    Section,
    SectionMetadata,
    check_integrity,
    tree_from_dict,
    tree_to_dict,
)

__all__ = [
    "BLOCK_TYPES",
    "Block",
    "apply_block_update",
    "block_fields",
    "block_from_dict",
    "block_to_dict",
    "clone_block",
    "create_default_block",
    "BoundsError",
    "ContentError",
    "ErrorCode",
    "IntegrityError",
    "LockedError",
    "NotFoundError",
    "TypeMismatchError",
    "ExportOptions",
    "ExportRequest",
    "build_export_request",
    "ContentTree",
    "Section",
    "SectionMetadata",
    "check_integrity",
    "tree_from_dict",
    "tree_to_dict",
]
