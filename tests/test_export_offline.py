"""Offline tests for JSON and CSV export builders.

Scenarios:
- Snapshot keys boxes and samples by id and stamps the export date
- CSV keeps a fixed column order, exports active samples only, writes
  positions 1-based, quotes every data cell and starts with a BOM
"""

from __future__ import annotations

import csv
import io
from datetime import UTC, datetime

from custom_components.labfreezer.export import (
    CSV_BOM,
    CSV_COLUMNS,
    build_csv_rows,
    build_snapshot,
    export_filename,
    render_csv,
)
from custom_components.labfreezer.models import Box, Sample, SampleStatus

NOW = datetime(2024, 5, 1, 8, 30, tzinfo=UTC)


def _fixtures() -> tuple[dict[str, Box], list[Sample]]:
    boxes = {"b1": Box(id="b1", name="Freezer A", created_at=NOW)}
    samples = [
        Sample(
            id="s1",
            box_id="b1",
            position=0,
            sample_number="NP-1",
            name='Fe3O4 "large"',
            molar_conc=2.0,
            mass_conc=0.25,
            notes="batch, 12",
            created_at=NOW,
        ),
        Sample(
            id="s2",
            box_id=None,
            position=-1,
            sample_number="NP-2",
            name="Old",
            status=SampleStatus.ARCHIVED,
            created_at=NOW,
        ),
    ]
    return boxes, samples


def test_snapshot_includes_every_status() -> None:
    boxes, samples = _fixtures()
    snapshot = build_snapshot(boxes.values(), samples, now=NOW)

    assert snapshot["exportDate"] == "2024-05-01T08:30:00Z"
    assert set(snapshot["boxes"]) == {"b1"}
    assert set(snapshot["samples"]) == {"s1", "s2"}
    assert snapshot["samples"]["s2"]["status"] == "archived"
    assert snapshot["boxes"]["b1"]["capacity"] == 100


def test_csv_rows_cover_active_samples_in_column_order() -> None:
    boxes, samples = _fixtures()
    rows = build_csv_rows(boxes, samples)

    assert len(rows) == 1
    row = dict(zip(CSV_COLUMNS, rows[0], strict=True))
    assert row["Sample number"] == "NP-1"
    assert row["Theoretical concentration"] == "2"
    assert row["Actual concentration"] == "0.25"
    assert row["Box"] == "Freezer A"
    assert row["Position"] == "1"
    assert row["Size"] == ""
    assert row["Created at"] == "2024-05-01T08:30:00Z"


def test_render_csv_quotes_cells_and_prefixes_bom() -> None:
    boxes, samples = _fixtures()
    content = render_csv(build_csv_rows(boxes, samples))

    assert content.startswith(CSV_BOM)
    lines = content[len(CSV_BOM) :].splitlines()
    assert lines[0] == ",".join(CSV_COLUMNS)
    assert lines[1].startswith('"NP-1","Fe3O4 ""large""",""')

    parsed = list(csv.reader(io.StringIO(content[len(CSV_BOM) :])))
    assert parsed[1][9] == "batch, 12"


def test_export_filename_uses_date() -> None:
    assert export_filename("csv", now=NOW) == "lab-inventory-2024-05-01.csv"


def test_render_csv_has_no_trailing_newline() -> None:
    boxes, samples = _fixtures()

    assert not render_csv(build_csv_rows(boxes, samples)).endswith("\n")
    assert render_csv([]) == CSV_BOM + ",".join(CSV_COLUMNS)
