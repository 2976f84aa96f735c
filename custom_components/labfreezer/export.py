"""Export builders for LabFreezer.

Two formats are produced from the repository's cached state:

- a JSON-ready snapshot ``{"exportDate", "boxes", "samples"}`` of every box and
  sample (all statuses), keyed by id;
- a CSV table of active samples with a fixed column order, every data cell
  quoted and a UTF-8 BOM prefix so spreadsheet tools detect the encoding.

Builders are pure; writing the result anywhere is left to the caller.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any, Final

from .models import Box, Sample, format_timestamp, is_active

CSV_BOM: Final[str] = "\ufeff"

CSV_COLUMNS: Final[tuple[str, ...]] = (
    "Sample number",
    "Name",
    "Size",
    "Coating",
    "Solvent",
    "Theoretical concentration",
    "Actual concentration",
    "Box",
    "Position",
    "Notes",
    "Created at",
)


def _now() -> datetime:
    return datetime.now(tz=UTC).replace(microsecond=0)


# -----------------------------
# Serialization helpers
# -----------------------------


def box_to_dict(box: Box) -> dict[str, Any]:
    return {
        "id": box.id,
        "name": box.name,
        "description": box.description,
        "layout": str(box.layout),
        "capacity": box.capacity,
        "created_at": format_timestamp(box.created_at),
    }


def sample_to_dict(sample: Sample) -> dict[str, Any]:
    return {
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
        "status": str(sample.status),
        "created_at": format_timestamp(sample.created_at),
    }


def export_filename(extension: str, *, now: datetime | None = None) -> str:
    """Return ``lab-inventory-YYYY-MM-DD.<extension>`` for the given day."""

    day = (now or _now()).date().isoformat()
    return f"lab-inventory-{day}.{extension}"


# -----------------------------
# JSON snapshot
# -----------------------------


def build_snapshot(
    boxes: Iterable[Box], samples: Iterable[Sample], *, now: datetime | None = None
) -> dict[str, Any]:
    return {
        "exportDate": format_timestamp(now or _now()),
        "boxes": {box.id: box_to_dict(box) for box in boxes},
        "samples": {sample.id: sample_to_dict(sample) for sample in samples},
    }


# -----------------------------
# CSV table
# -----------------------------


def _format_number(value: float | None) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def build_csv_rows(boxes: Mapping[str, Box], samples: Iterable[Sample]) -> list[list[str]]:
    """Build one row per active sample in ``CSV_COLUMNS`` order.

    Positions are written 1-based.
    """

    rows: list[list[str]] = []
    for sample in samples:
        if not is_active(sample):
            continue
        box = boxes.get(sample.box_id) if sample.box_id else None
        rows.append(
            [
                sample.sample_number or "",
                sample.name,
                sample.size or "",
                sample.coating,
                sample.solvent,
                _format_number(sample.molar_conc),
                _format_number(sample.mass_conc),
                box.name if box is not None else "",
                str(sample.position + 1),
                sample.notes or "",
                format_timestamp(sample.created_at) or "",
            ]
        )
    return rows


def render_csv(rows: Iterable[Iterable[str]]) -> str:
    buffer = io.StringIO()
    buffer.write(",".join(CSV_COLUMNS) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return CSV_BOM + buffer.getvalue().removesuffix("\n")
