"""Placement decisions for moving and copying samples.

Pure functions with no I/O. The repository asks this module where a sample
should go and performs the writes the decision requires.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass

from .models import Sample, is_active


@dataclass(frozen=True)
class Relocate:
    """Move ``sample_id`` into an empty cell (or its own cell)."""

    sample_id: str
    box_id: str
    position: int


@dataclass(frozen=True)
class Swap:
    """Exchange placements of ``sample_id`` and ``occupant_id``.

    The source takes the target cell; the occupant takes the source's
    previous ``(box_id, position)``.
    """

    sample_id: str
    occupant_id: str
    source_box_id: str | None
    source_position: int
    target_box_id: str
    target_position: int


MoveDecision = Relocate | Swap


def occupant_map(samples: Iterable[Sample], box_id: str) -> dict[int, str]:
    """Map position -> sample id for the active samples of ``box_id``."""

    return {s.position: s.id for s in samples if s.box_id == box_id and is_active(s)}


def decide_move(
    occupants: Mapping[int, str],
    source: Sample,
    target_box_id: str,
    target_position: int,
) -> MoveDecision:
    """Decide between a direct relocation and a swap.

    ``occupants`` is the occupant map of the target box.
    """

    occupant_id = occupants.get(target_position)
    if occupant_id is None or occupant_id == source.id:
        return Relocate(sample_id=source.id, box_id=target_box_id, position=target_position)
    return Swap(
        sample_id=source.id,
        occupant_id=occupant_id,
        source_box_id=source.box_id,
        source_position=source.position,
        target_box_id=target_box_id,
        target_position=target_position,
    )


def first_fit_position(occupied: Collection[int], capacity: int) -> int | None:
    """Return the lowest index in ``[0, capacity)`` not in ``occupied``."""

    taken = set(occupied)
    for position in range(capacity):
        if position not in taken:
            return position
    return None
