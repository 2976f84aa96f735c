"""Typed models and validation helpers for LabFreezer.

This module defines the shapes for Box and Sample, lightweight input schemas
for create/update operations, structural validation predicates, and the pure
conversion pair between entities and the snake_case rows kept by durable
stores.

The intent is to keep these models framework-agnostic and free of I/O. Higher
layers (repository, storage, WebSocket/API) compose these helpers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final, TypedDict

from .const import (
    ARCHIVED_POSITION,
    DEFAULT_COATING,
    DEFAULT_SOLVENT,
    LAYOUT_9X9,
    LAYOUT_10X10,
    LAYOUT_CAPACITY,
)
from .exceptions import StoreError, ValidationError

class BoxLayout(StrEnum):
    """Grid layout of a box."""

    GRID_10X10 = LAYOUT_10X10
    GRID_9X9 = LAYOUT_9X9


class SampleStatus(StrEnum):
    """Lifecycle state of a sample: active -> archived | deleted."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass
class Box:
    """A fixed-capacity grid container."""

    id: str
    name: str
    description: str | None = None
    layout: BoxLayout = BoxLayout.GRID_10X10
    created_at: datetime | None = None

    @property
    def capacity(self) -> int:
        return layout_capacity(self.layout)


@dataclass
class Sample:
    """A tracked physical item placed in a box or archived.

    ``box_id`` and ``position`` are only meaningful while ``status`` is active;
    archived samples carry ``box_id=None`` and ``position=ARCHIVED_POSITION``.
    """

    id: str
    box_id: str | None
    position: int
    sample_number: str
    name: str
    coating: str = DEFAULT_COATING
    solvent: str = DEFAULT_SOLVENT
    size: str | None = None
    molar_conc: float | None = None
    mass_conc: float | None = None
    notes: str | None = None
    status: SampleStatus = SampleStatus.ACTIVE
    created_at: datetime | None = None


class SampleCreate(TypedDict, total=False):
    """Creation input for Sample. ``sample_number``, ``name``, ``box_id`` and
    ``position`` are required."""

    box_id: str
    position: int
    sample_number: str
    name: str
    size: str | None
    coating: str | None
    solvent: str | None
    molar_conc: float | str | None
    mass_conc: float | str | None
    notes: str | None


class SampleUpdate(TypedDict, total=False):
    """Update input for Sample descriptive fields. None clears optional fields."""

    sample_number: str
    name: str
    size: str | None
    coating: str | None
    solvent: str | None
    molar_conc: float | str | None
    mass_conc: float | str | None
    notes: str | None


DESCRIPTIVE_FIELDS: Final[tuple[str, ...]] = (
    "sample_number",
    "name",
    "size",
    "coating",
    "solvent",
    "molar_conc",
    "mass_conc",
    "notes",
)

# Columns copied verbatim when duplicating a sample
COPY_FIELDS: Final[tuple[str, ...]] = DESCRIPTIVE_FIELDS


# -----------------------------
# Utility helpers
# -----------------------------


def new_uuid4_str() -> str:
    """Generate a hyphenated UUID v4 string."""

    return str(uuid.uuid4())


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (with 'Z' or an offset) into an aware datetime."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str):
        raise ValueError("timestamp must be an ISO-8601 string")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


# -----------------------------
# Structural predicates
# -----------------------------


def layout_capacity(layout: BoxLayout | str) -> int:
    try:
        return LAYOUT_CAPACITY[str(layout)]
    except KeyError as exc:
        raise ValidationError(f"unknown box layout: {layout}") from exc


def is_valid_position(layout: BoxLayout | str, position: Any) -> bool:
    """Return True when ``position`` addresses a cell of ``layout``."""

    if isinstance(position, bool) or not isinstance(position, int):
        return False
    return 0 <= position < layout_capacity(layout)


def is_active(sample: Sample) -> bool:
    return sample.status == SampleStatus.ACTIVE


# -----------------------------
# Validation helpers
# -----------------------------


def _required_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required and must be a non-empty string")
    return value.strip()


def _optional_text(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string or null")
    trimmed = value.strip()
    return trimmed or None


def _choice_text(value: Any, field_name: str, default: str) -> str:
    # Curated option or free-text override; empty falls back to the default
    text = _optional_text(value, field_name)
    return text if text is not None else default


def _optional_number(value: Any, field_name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number or null")
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return float(value)
        except ValueError as exc:
            raise ValidationError(f"{field_name} must be a number or null") from exc
    if isinstance(value, int | float):
        return float(value)
    raise ValidationError(f"{field_name} must be a number or null")


def validate_box_name(name: Any) -> str:
    """Validate a box name and return a trimmed value."""

    return _required_text(name, "name")


def validate_position(layout: BoxLayout | str, position: Any) -> int:
    if not is_valid_position(layout, position):
        raise ValidationError(
            f"position must be an integer in [0, {layout_capacity(layout) - 1}]"
        )
    return position


def _normalize_descriptive(field: str, value: Any) -> Any:
    if field in {"sample_number", "name"}:
        return _required_text(value, field)
    if field == "coating":
        return _choice_text(value, field, DEFAULT_COATING)
    if field == "solvent":
        return _choice_text(value, field, DEFAULT_SOLVENT)
    if field in {"molar_conc", "mass_conc"}:
        return _optional_number(value, field)
    return _optional_text(value, field)


def validate_sample_create(payload: SampleCreate, *, box: Box) -> SampleCreate:
    """Validate and normalize a creation payload against its target box.

    Returns a new payload with trimmed text, coating/solvent defaults applied and
    concentrations coerced to floats. Raises ValidationError.
    """

    if payload.get("box_id") != box.id:
        raise ValidationError("box_id must reference the target box")
    normalized: SampleCreate = {
        "box_id": box.id,
        "position": validate_position(box.layout, payload.get("position")),
    }
    for field in DESCRIPTIVE_FIELDS:
        normalized[field] = _normalize_descriptive(field, payload.get(field))  # type: ignore[literal-required]
    return normalized


def validate_sample_update(sample: Sample, update: SampleUpdate) -> SampleUpdate:
    """Validate an update payload and keep only fields that actually change."""

    unknown = set(update) - set(DESCRIPTIVE_FIELDS)
    if unknown:
        raise ValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")
    changed: SampleUpdate = {}
    for field, raw in update.items():
        value = _normalize_descriptive(field, raw)
        if getattr(sample, field) != value:
            changed[field] = value  # type: ignore[literal-required]
    return changed


def apply_sample_update(sample: Sample, fields: dict[str, Any]) -> Sample:
    """Return a copy of ``sample`` with ``fields`` merged in."""

    return replace(sample, **fields)


def archived(sample: Sample) -> Sample:
    return replace(
        sample, status=SampleStatus.ARCHIVED, box_id=None, position=ARCHIVED_POSITION
    )


# -----------------------------
# Row mapping (durable store boundary)
# -----------------------------


def box_to_row(box: Box, *, owner_id: str) -> dict[str, Any]:
    return {
        "id": box.id,
        "name": box.name,
        "description": box.description,
        "layout": str(box.layout),
        "user_id": owner_id,
        "created_at": format_timestamp(box.created_at),
    }


def box_from_row(row: dict[str, Any]) -> Box:
    try:
        return Box(
            id=str(row["id"]),
            name=str(row["name"]),
            description=row.get("description"),
            layout=BoxLayout(row.get("layout") or LAYOUT_10X10),
            created_at=parse_timestamp(row.get("created_at")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StoreError(f"malformed box row: {exc}") from exc


def sample_fields_to_row(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert a partial set of sample fields into row columns."""

    row: dict[str, Any] = {}
    for key, value in fields.items():
        if key == "status":
            row[key] = str(value)
        elif key == "created_at":
            row[key] = format_timestamp(value)
        elif key == "box_id":
            row[key] = value or None
        else:
            row[key] = value
    return row


def sample_to_row(sample: Sample, *, owner_id: str) -> dict[str, Any]:
    row = sample_fields_to_row(
        {
            "id": sample.id,
            "box_id": sample.box_id,
            "position": sample.position,
            "sample_number": sample.sample_number,
            "name": sample.name,
            "size": sample.size,
            "coating": sample.coating,
            "solvent": sample.solvent,
            "molar_conc": sample.molar_conc,
            "mass_conc": sample.mass_conc,
            "notes": sample.notes,
            "status": sample.status,
            "created_at": sample.created_at,
        }
    )
    row["user_id"] = owner_id
    return row


def sample_from_row(row: dict[str, Any]) -> Sample:
    try:
        molar = row.get("molar_conc")
        mass = row.get("mass_conc")
        return Sample(
            id=str(row["id"]),
            box_id=row.get("box_id") or None,
            position=int(row.get("position", ARCHIVED_POSITION)),
            sample_number=str(row.get("sample_number") or ""),
            name=str(row["name"]),
            coating=row.get("coating") or DEFAULT_COATING,
            solvent=row.get("solvent") or DEFAULT_SOLVENT,
            size=row.get("size"),
            molar_conc=float(molar) if molar is not None else None,
            mass_conc=float(mass) if mass is not None else None,
            notes=row.get("notes"),
            status=SampleStatus(row.get("status") or SampleStatus.ACTIVE),
            created_at=parse_timestamp(row.get("created_at")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StoreError(f"malformed sample row: {exc}") from exc
