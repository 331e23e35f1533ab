"""Hand-off contract between the editing core and export codecs.

Codecs (PDF, DOCX, ...) live outside this package; they receive an
:class:`ExportRequest` holding an integrity-checked tree restricted to the
sections the user chose.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Sequence

from .errors import ErrorCode, NotFoundError, TypeMismatchError
from .model import ContentTree, Section, check_integrity, tree_to_dict

__all__ = [
    "EXPORT_FORMATS",
    "EXPORT_QUALITIES",
    "ExportOptions",
    "ExportRequest",
    "build_export_request",
]

LOGGER = logging.getLogger(__name__)

EXPORT_FORMATS: tuple[str, ...] = ("pdf", "docx", "pptx", "xlsx", "html", "md")
EXPORT_QUALITIES: tuple[str, ...] = ("draft", "standard", "high")


@dataclass(frozen=True, slots=True)
class ExportOptions:
    format: str = "pdf"
    quality: str = "standard"
    include_cover_page: bool = True
    include_table_of_contents: bool = True
    include_comments: bool = False
    sections_to_export: Literal["all"] | tuple[str, ...] = "all"
    watermark: str | None = None

    def __post_init__(self) -> None:
        if self.format not in EXPORT_FORMATS:
            raise _invalid("format", self.format, EXPORT_FORMATS)
        if self.quality not in EXPORT_QUALITIES:
            raise _invalid("quality", self.quality, EXPORT_QUALITIES)
        if self.sections_to_export != "all":
            if isinstance(self.sections_to_export, str):
                raise _invalid("sections_to_export", self.sections_to_export, ("all",))
            object.__setattr__(self, "sections_to_export", tuple(self.sections_to_export))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExportOptions":
        """Build options from the camelCase form sent by the export dialog."""

        sections = payload.get("sectionsToExport", payload.get("sections_to_export", "all"))
        return cls(
            format=payload.get("format", "pdf"),
            quality=payload.get("quality", "standard"),
            include_cover_page=bool(payload.get("includeCoverPage", True)),
            include_table_of_contents=bool(payload.get("includeTableOfContents", True)),
            include_comments=bool(payload.get("includeComments", False)),
            sections_to_export=sections if sections == "all" else tuple(sections),
            watermark=payload.get("watermark"),
        )

    @property
    def exports_all(self) -> bool:
        return self.sections_to_export == "all"


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """What an export codec receives."""

    tree: ContentTree
    options: ExportOptions
    report_id: str | None = None
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def section_ids(self) -> list[str]:
        return self.tree.section_ids()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reportId": self.report_id,
            "requestedAt": self.requested_at.isoformat(),
            "content": tree_to_dict(self.tree),
            "options": {
                "format": self.options.format,
                "quality": self.options.quality,
                "includeCoverPage": self.options.include_cover_page,
                "includeTableOfContents": self.options.include_table_of_contents,
                "includeComments": self.options.include_comments,
                "sectionsToExport": (
                    "all" if self.options.exports_all else list(self.options.sections_to_export)
                ),
                "watermark": self.options.watermark,
            },
        }


def build_export_request(
    tree: ContentTree,
    options: ExportOptions | None = None,
    *,
    report_id: str | None = None,
) -> ExportRequest:
    """Validate ``tree`` and restrict it to ``options.sections_to_export``.

    A selected section is exported with its whole subtree. Ancestors of a
    selected section are kept as containers with their own blocks, so the
    exported outline keeps its nesting.

    Raises:
        IntegrityError: When ``tree`` contains duplicate ids.
        NotFoundError: When a requested section id does not exist.
    """

    options = options or ExportOptions()
    check_integrity(tree)
    if options.exports_all:
        return ExportRequest(tree=tree, options=options, report_id=report_id)

    selected = set(options.sections_to_export)
    for section_id in options.sections_to_export:
        if tree.find_section(section_id) is None:
            raise NotFoundError.section(section_id)
    pruned = ContentTree(sections=_prune(tree.sections, selected))
    LOGGER.debug(
        "Export request for %d of %d sections (%s)",
        pruned.section_count(),
        tree.section_count(),
        options.format,
    )
    return ExportRequest(tree=pruned, options=options, report_id=report_id)


def _prune(sections: Sequence[Section], selected: set[str]) -> tuple[Section, ...]:
    kept: list[Section] = []
    for section in sections:
        if section.id in selected:
            kept.append(section)
            continue
        children = _prune(section.children, selected)
        if children:
            kept.append(replace(section, children=children))
    return tuple(kept)


def _invalid(field_name: str, value: Any, choices: Sequence[str]) -> TypeMismatchError:
    return TypeMismatchError(
        error_code=ErrorCode.INVALID_VALUE,
        message=f"Invalid export {field_name} {value!r}",
        details={"field": field_name, "valid_values": list(choices)},
    )
