"""Block type registry: the closed set of content block variants.

Each variant is a frozen dataclass whose class-level ``block_type`` is the
discriminant. The dataclass fields of a variant are the only payload fields
it accepts, which makes field validity a structural check rather than a
runtime guess.
"""

from __future__ import annotations

import copy
import logging
import re
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Mapping, Union

from .errors import ErrorCode, TypeMismatchError

__all__ = [
    "Block",
    "ParagraphBlock",
    "HeadingBlock",
    "ChartBlock",
    "TableBlock",
    "ImageBlock",
    "CalloutBlock",
    "QuoteBlock",
    "DividerBlock",
    "PageBreakBlock",
    "ListBlock",
    "KPICardBlock",
    "AnyBlock",
    "BLOCK_TYPES",
    "CHART_TYPES",
    "CALLOUT_VARIANTS",
    "apply_block_update",
    "block_fields",
    "block_from_dict",
    "block_to_dict",
    "clone_block",
    "create_default_block",
    "new_id",
    "parse_timestamp",
]

LOGGER = logging.getLogger(__name__)

CHART_TYPES: tuple[str, ...] = (
    "line",
    "bar",
    "horizontal_bar",
    "stacked_bar",
    "pie",
    "donut",
    "area",
    "radar",
    "scatter",
    "gauge",
    "funnel",
    "treemap",
    "heatmap",
    "waterfall",
    "combo",
)
CALLOUT_VARIANTS: tuple[str, ...] = ("info", "warning", "success", "error", "tip")
DIVIDER_STYLES: tuple[str, ...] = ("solid", "dashed", "dotted")
LIST_TYPES: tuple[str, ...] = ("bullet", "numbered")
KPI_FORMATS: tuple[str, ...] = ("number", "currency", "percent")
ALIGNMENTS: tuple[str, ...] = ("left", "center", "right")
HEADING_LEVELS: tuple[int, ...] = (1, 2, 3, 4, 5, 6)

_COMMON_FIELDS = frozenset({"id", "created_at", "updated_at"})
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def new_id() -> str:
    """Return a fresh opaque identifier."""

    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Block:
    """Fields shared by every block variant.

    Container payloads (``rows``, ``data``, ``items``, ...) are shared with
    history snapshots and must not be mutated in place. Derive changed blocks
    through :func:`apply_block_update`.
    """

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    block_type: ClassVar[str] = ""

    @property
    def type(self) -> str:
        return self.block_type


@dataclass(frozen=True, slots=True)
class ParagraphBlock(Block):
    block_type: ClassVar[str] = "paragraph"

    content: str = ""
    formatting: dict[str, Any] = field(default_factory=lambda: {"alignment": "left"})


@dataclass(frozen=True, slots=True)
class HeadingBlock(Block):
    block_type: ClassVar[str] = "heading"

    content: str = ""
    level: int = 2


@dataclass(frozen=True, slots=True)
class ChartBlock(Block):
    """Chart payload: labelled series plus renderer configuration."""

    block_type: ClassVar[str] = "chart"

    chart_type: str = "bar"
    title: str = "New chart"
    subtitle: str | None = None
    data: dict[str, Any] = field(default_factory=lambda: {"labels": [], "datasets": []})
    config: dict[str, Any] = field(
        default_factory=lambda: {"showLegend": True, "legendPosition": "top"}
    )
    source_template_id: str | None = None


@dataclass(frozen=True, slots=True)
class TableBlock(Block):
    block_type: ClassVar[str] = "table"

    title: str | None = None
    headers: list[dict[str, Any]] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=lambda: {"striped": True, "bordered": True})
    source_template_id: str | None = None


@dataclass(frozen=True, slots=True)
class ImageBlock(Block):
    block_type: ClassVar[str] = "image"

    src: str = ""
    alt: str = ""
    caption: str | None = None
    width: float | None = None
    height: float | None = None
    alignment: str = "center"


@dataclass(frozen=True, slots=True)
class CalloutBlock(Block):
    block_type: ClassVar[str] = "callout"

    variant: str = "info"
    title: str | None = None
    content: str = ""


@dataclass(frozen=True, slots=True)
class QuoteBlock(Block):
    block_type: ClassVar[str] = "quote"

    content: str = ""
    author: str | None = None
    source: str | None = None


@dataclass(frozen=True, slots=True)
class DividerBlock(Block):
    block_type: ClassVar[str] = "divider"

    style: str = "solid"


@dataclass(frozen=True, slots=True)
class PageBreakBlock(Block):
    block_type: ClassVar[str] = "pagebreak"


@dataclass(frozen=True, slots=True)
class ListBlock(Block):
    """Bullet or numbered list; items are ``{"id", "content", "children"?}``."""

    block_type: ClassVar[str] = "list"

    list_type: str = "bullet"
    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class KPICardBlock(Block):
    block_type: ClassVar[str] = "kpi_card"

    label: str = "KPI"
    value: float = 0
    unit: str | None = None
    format: str = "number"
    variation: dict[str, Any] | None = None
    sparkline_data: list[float] | None = None
    target_value: float | None = None
    thresholds: dict[str, float] | None = None


AnyBlock = Union[
    ParagraphBlock,
    HeadingBlock,
    ChartBlock,
    TableBlock,
    ImageBlock,
    CalloutBlock,
    QuoteBlock,
    DividerBlock,
    PageBreakBlock,
    ListBlock,
    KPICardBlock,
]

BLOCK_TYPES: Dict[str, type[Block]] = {
    cls.block_type: cls
    for cls in (
        ParagraphBlock,
        HeadingBlock,
        ChartBlock,
        TableBlock,
        ImageBlock,
        CalloutBlock,
        QuoteBlock,
        DividerBlock,
        PageBreakBlock,
        ListBlock,
        KPICardBlock,
    )
}


# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------

Rule = Callable[[Any], bool]


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_list(value: Any) -> bool:
    return isinstance(value, list)


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def _one_of(*choices: Any) -> Rule:
    # bool is excluded so True never passes for 1
    return lambda value: not isinstance(value, bool) and value in choices


def _optional(rule: Rule) -> Rule:
    return lambda value: value is None or rule(value)


def _is_number_list(value: Any) -> bool:
    return isinstance(value, list) and all(_is_number(item) for item in value)


def _is_list_items(value: Any) -> bool:
    """Items are plain strings or mappings with string ``content`` and nested ``children``."""

    if not isinstance(value, list):
        return False
    for item in value:
        if isinstance(item, str):
            continue
        if not isinstance(item, Mapping):
            return False
        if not isinstance(item.get("content", ""), str):
            return False
        children = item.get("children")
        if children is not None and not _is_list_items(children):
            return False
    return True


_FIELD_RULES: Dict[str, Dict[str, Rule]] = {
    "paragraph": {"content": _is_str, "formatting": _is_mapping},
    "heading": {"content": _is_str, "level": _one_of(*HEADING_LEVELS)},
    "chart": {
        "chart_type": _one_of(*CHART_TYPES),
        "title": _is_str,
        "subtitle": _optional(_is_str),
        "data": _is_mapping,
        "config": _is_mapping,
        "source_template_id": _optional(_is_str),
    },
    "table": {
        "title": _optional(_is_str),
        "headers": _is_list,
        "rows": _is_list,
        "config": _is_mapping,
        "source_template_id": _optional(_is_str),
    },
    "image": {
        "src": _is_str,
        "alt": _is_str,
        "caption": _optional(_is_str),
        "width": _optional(_is_number),
        "height": _optional(_is_number),
        "alignment": _one_of(*ALIGNMENTS),
    },
    "callout": {
        "variant": _one_of(*CALLOUT_VARIANTS),
        "title": _optional(_is_str),
        "content": _is_str,
    },
    "quote": {"content": _is_str, "author": _optional(_is_str), "source": _optional(_is_str)},
    "divider": {"style": _one_of(*DIVIDER_STYLES)},
    "pagebreak": {},
    "list": {"list_type": _one_of(*LIST_TYPES), "items": _is_list_items},
    "kpi_card": {
        "label": _is_str,
        "value": _is_number,
        "unit": _optional(_is_str),
        "format": _one_of(*KPI_FORMATS),
        "variation": _optional(_is_mapping),
        "sparkline_data": _optional(_is_number_list),
        "target_value": _optional(_is_number),
        "thresholds": _optional(_is_mapping),
    },
}


def _snake_case(name: str) -> str:
    if "_" in name or name.islower():
        return name
    return _CAMEL_RE.sub("_", name).lower()


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _resolve_type(block_type: str) -> type[Block]:
    cls = BLOCK_TYPES.get(block_type)
    if cls is None:
        raise TypeMismatchError(
            error_code=ErrorCode.UNKNOWN_BLOCK_TYPE,
            message=f"Unknown block type '{block_type}'",
            details={"type": block_type, "known_types": sorted(BLOCK_TYPES)},
        )
    return cls


def block_fields(block_type: str) -> frozenset[str]:
    """Return the payload field names valid for ``block_type``."""

    cls = _resolve_type(block_type)
    return frozenset(f.name for f in fields(cls)) - _COMMON_FIELDS


def _validate_payload(block_type: str, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize keys to field names and check them against the variant."""

    valid = block_fields(block_type)
    rules = _FIELD_RULES[block_type]
    normalized: dict[str, Any] = {}
    for raw_key, value in payload.items():
        key = _snake_case(str(raw_key))
        if key not in valid:
            raise TypeMismatchError(
                message=f"Field '{raw_key}' is not valid for {block_type} blocks",
                details={"type": block_type, "field": raw_key, "valid_fields": sorted(valid)},
            )
        rule = rules.get(key)
        if rule is not None and not rule(value):
            raise TypeMismatchError(
                error_code=ErrorCode.INVALID_VALUE,
                message=f"Invalid value for {block_type}.{key}: {value!r}",
                details={"type": block_type, "field": key},
            )
        if block_type == "list" and key == "items":
            normalized[key] = _normalize_list_items(value)
        else:
            normalized[key] = copy.deepcopy(value)
    return normalized


def _normalize_list_items(items: list[Any]) -> list[dict[str, Any]]:
    normalized: list[dict[str, Any]] = []
    for item in items:
        if isinstance(item, str):
            normalized.append({"id": new_id(), "content": item})
            continue
        entry = copy.deepcopy(dict(item))
        entry.setdefault("id", new_id())
        entry.setdefault("content", "")
        children = entry.get("children")
        if children:
            entry["children"] = _normalize_list_items(list(children))
        normalized.append(entry)
    return normalized


def _reissue_list_items(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    cloned: list[dict[str, Any]] = []
    for item in items:
        entry = {"content": item} if isinstance(item, str) else dict(item)
        entry["id"] = new_id()
        children = entry.get("children")
        if children:
            entry["children"] = _reissue_list_items(list(children))
        cloned.append(entry)
    return cloned


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_default_block(block_type: str, options: Mapping[str, Any] | None = None) -> Block:
    """Return a fully-populated block of ``block_type`` with a fresh id.

    ``options`` overrides per-type defaults (heading level, list kind, callout
    variant, ...). List items may be given as plain strings.
    """

    cls = _resolve_type(block_type)
    payload = _validate_payload(block_type, dict(options or {}))
    timestamp = _utcnow()
    block = cls(id=new_id(), created_at=timestamp, updated_at=timestamp, **payload)
    LOGGER.debug("Created %s block %s", block_type, block.id)
    return block


def apply_block_update(block: Block, updates: Mapping[str, Any]) -> Block:
    """Return ``block`` with ``updates`` merged in.

    Raises :class:`TypeMismatchError` for fields the variant does not define,
    for attempts to change the discriminant or identity, and for invalid values.
    """

    pending = dict(updates)
    requested_type = pending.pop("type", None)
    if requested_type is not None and requested_type != block.block_type:
        raise TypeMismatchError(
            message=f"Cannot change a {block.block_type} block into '{requested_type}'",
            details={"type": block.block_type, "requested_type": requested_type},
        )
    for key in list(pending):
        if _snake_case(str(key)) in _COMMON_FIELDS:
            raise TypeMismatchError(
                message=f"Field '{key}' is managed by the editor and cannot be updated",
                details={"type": block.block_type, "field": key},
            )
    changes = _validate_payload(block.block_type, pending)
    # the result shares no containers with the previous block
    untouched = {
        f.name: copy.deepcopy(getattr(block, f.name))
        for f in fields(block)
        if f.name not in _COMMON_FIELDS and f.name not in changes
    }
    return replace(block, updated_at=_utcnow(), **untouched, **changes)


def clone_block(block: Block) -> Block:
    """Return a deep copy of ``block`` with a fresh id and timestamps."""

    payload = {
        f.name: copy.deepcopy(getattr(block, f.name))
        for f in fields(block)
        if f.name not in _COMMON_FIELDS
    }
    if isinstance(block, ListBlock):
        payload["items"] = _reissue_list_items(payload["items"])
    timestamp = _utcnow()
    return type(block)(id=new_id(), created_at=timestamp, updated_at=timestamp, **payload)


def block_to_dict(block: Block) -> dict[str, Any]:
    """Serialize ``block`` to its camelCase wire form."""

    payload: dict[str, Any] = {
        "id": block.id,
        "type": block.block_type,
        "createdAt": block.created_at.isoformat(),
        "updatedAt": block.updated_at.isoformat(),
    }
    for f in fields(block):
        if f.name in _COMMON_FIELDS:
            continue
        value = getattr(block, f.name)
        if value is None:
            continue
        payload[_camel_case(f.name)] = copy.deepcopy(value)
    return payload


def block_from_dict(payload: Mapping[str, Any]) -> Block:
    """Rebuild a block from its wire form."""

    data = dict(payload)
    block_type = data.pop("type", None)
    if not isinstance(block_type, str):
        raise TypeMismatchError(
            error_code=ErrorCode.UNKNOWN_BLOCK_TYPE,
            message="Block payload is missing its 'type' discriminant",
        )
    cls = _resolve_type(block_type)
    block_id = data.pop("id", None) or new_id()
    created_at = parse_timestamp(data.pop("createdAt", None))
    updated_at = parse_timestamp(data.pop("updatedAt", None), fallback=created_at)
    body = _validate_payload(block_type, data)
    return cls(id=block_id, created_at=created_at, updated_at=updated_at, **body)


def parse_timestamp(value: Any, *, fallback: datetime | None = None) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""

    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            LOGGER.debug("Ignoring unparsable timestamp %r", value)
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    return fallback or _utcnow()
