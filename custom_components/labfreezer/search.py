"""Free-text sample search.

Stateless: results are re-derived from the given collections on every call.
A query is split into lower-cased whitespace-separated tokens and a sample
matches when every token is a substring of its searchable text (AND logic).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import Box, Sample, SampleStatus


def tokenize(query: str | None) -> list[str]:
    """Split a query into lower-cased tokens; empty tokens are dropped."""

    if not query:
        return []
    return [token for token in query.strip().lower().split() if token]


def searchable_text(sample: Sample, boxes: Mapping[str, Box]) -> str:
    """Build the lower-cased text blob a sample is matched against.

    Concatenates name, notes, solvent, coating and the owning box name.
    """

    box = boxes.get(sample.box_id) if sample.box_id else None
    parts = [
        sample.name,
        sample.notes or "",
        sample.solvent,
        sample.coating,
        box.name if box is not None else "",
    ]
    return " ".join(parts).lower()


def search_samples(
    samples: Iterable[Sample], boxes: Mapping[str, Box], query: str | None
) -> list[Sample]:
    """Return non-deleted samples matching every token of ``query``.

    An empty query yields no results. Order follows ``samples`` iteration.
    """

    tokens = tokenize(query)
    if not tokens:
        return []
    results: list[Sample] = []
    for sample in samples:
        if sample.status == SampleStatus.DELETED:
            continue
        text = searchable_text(sample, boxes)
        if all(token in text for token in tokens):
            results.append(sample)
    return results
