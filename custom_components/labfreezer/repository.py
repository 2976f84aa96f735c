"""In-memory inventory repository for LabFreezer.

This module provides the authoritative per-owner cache of boxes and samples.
Each mutating operation validates its input, requests the corresponding write
from the durable store, and applies the local mutation only once the write
succeeds. Store failures are recorded as ``last_error`` and reported through
the return value; validation errors raise before any store call.

The repository is framework-agnostic and designed to be exercised by offline
tests and invoked by service/WebSocket layers.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import Any

from .const import CONTAINER_FULL_MESSAGE, DOMAIN, TRASH_SELECTION
from .exceptions import CapacityError, NotFoundError, StoreError, ValidationError
from .models import (
    COPY_FIELDS,
    Box,
    Sample,
    SampleCreate,
    SampleStatus,
    SampleUpdate,
    apply_sample_update,
    archived,
    is_active,
    validate_box_name,
    validate_position,
    validate_sample_create,
    validate_sample_update,
)
from .placement import Relocate, decide_move, first_fit_position, occupant_map
from .search import search_samples
from .storage import SampleStore

LOGGER = logging.getLogger(__name__)


def _serialized(method: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
    """Hold the repository operation lock across check, write and cache update."""

    @functools.wraps(method)
    async def wrapper(self: Repository, *args: Any, **kwargs: Any) -> Any:
        async with self._op_lock:
            return await method(self, *args, **kwargs)

    return wrapper


class Repository:
    """Authoritative cache of one owner's boxes and samples.

    Notes:
        - Mutating operations run one at a time under ``_op_lock``, so checks
          against the cache still hold when the store write completes.
          They must not call one another.
        - The swap path of ``async_move_sample`` is a best-effort dual write:
          both local placements are applied even when one store write fails.
    """

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def __init__(self, store: SampleStore) -> None:
        self._store = store
        self._boxes_by_id: dict[str, Box] = {}
        self._samples_by_id: dict[str, Sample] = {}
        self._current_box_id: str | None = None
        self._owner_id: str | None = None
        self._last_error: str | None = None
        self._op_lock = asyncio.Lock()

    @property
    def owner_id(self) -> str | None:
        return self._owner_id

    @property
    def current_box_id(self) -> str | None:
        return self._current_box_id

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def boxes(self) -> Mapping[str, Box]:
        return MappingProxyType(self._boxes_by_id)

    @property
    def samples(self) -> Mapping[str, Sample]:
        return MappingProxyType(self._samples_by_id)

    # -----------------------------
    # Internal helpers
    # -----------------------------

    def _record_failure(self, op: str, exc: StoreError, **context: Any) -> None:
        self._last_error = str(exc)
        LOGGER.warning(
            "Store write failed: %s",
            exc,
            extra={"domain": DOMAIN, "op": op, **context},
        )

    def _require_owner(self) -> str:
        if self._owner_id is None:
            raise ValidationError("owner is not set; load the inventory first")
        return self._owner_id

    def _require_box(self, box_id: Any) -> Box:
        box = self._boxes_by_id.get(box_id) if isinstance(box_id, str) else None
        if box is None:
            raise ValidationError("box_id must reference an existing box")
        return box

    # -----------------------------
    # Public API: loading and selection
    # -----------------------------

    @_serialized
    async def async_load_all(self, owner_id: str) -> bool:
        """Replace both maps with the owner's data from the durable store."""

        self._last_error = None
        try:
            boxes, samples = await asyncio.gather(
                self._store.async_list_boxes(owner_id),
                self._store.async_list_samples(owner_id),
            )
        except StoreError as exc:
            self._record_failure("load_all", exc, owner_id=owner_id)
            return False

        self._boxes_by_id = {box.id: box for box in boxes}
        self._samples_by_id = {sample.id: sample for sample in samples}
        self._owner_id = owner_id
        self._current_box_id = next(iter(self._boxes_by_id), None)
        LOGGER.debug(
            "Inventory loaded",
            extra={
                "domain": DOMAIN,
                "op": "load_all",
                "owner_id": owner_id,
                "boxes_count": len(self._boxes_by_id),
                "samples_count": len(self._samples_by_id),
            },
        )
        return True

    def set_current_selection(self, selection: str | None) -> None:
        """Select a box, the trash view (``TRASH``), or nothing."""

        if selection is not None and selection != TRASH_SELECTION:
            self._require_box(selection)
        self._current_box_id = selection

    def clear_error(self) -> None:
        self._last_error = None

    # -----------------------------
    # Public API: boxes
    # -----------------------------

    @_serialized
    async def async_create_box(self, name: str, owner_id: str | None = None) -> Box | None:
        name = validate_box_name(name)
        if owner_id is not None and self._owner_id not in (None, owner_id):
            raise ValidationError("owner_id does not match the loaded inventory")
        owner = owner_id or self._require_owner()
        try:
            box = await self._store.async_create_box(owner, name)
        except StoreError as exc:
            self._record_failure("create_box", exc, owner_id=owner)
            return None

        if self._owner_id is None:
            self._owner_id = owner
        self._boxes_by_id[box.id] = box
        if self._current_box_id is None:
            self._current_box_id = box.id
        LOGGER.debug(
            "Box created",
            extra={"domain": DOMAIN, "op": "create_box", "box_id": box.id},
        )
        return box

    @_serialized
    async def async_delete_box(self, box_id: str) -> bool:
        """Hard-delete a box; its active samples become ``deleted``."""

        try:
            await self._store.async_delete_box(box_id)
        except StoreError as exc:
            self._record_failure("delete_box", exc, box_id=box_id)
            return False

        self._boxes_by_id.pop(box_id, None)
        cascaded = 0
        for sample in list(self._samples_by_id.values()):
            if sample.box_id == box_id and is_active(sample):
                self._samples_by_id[sample.id] = replace(sample, status=SampleStatus.DELETED)
                cascaded += 1
        if self._current_box_id == box_id:
            self._current_box_id = None
        LOGGER.debug(
            "Box deleted",
            extra={
                "domain": DOMAIN,
                "op": "delete_box",
                "box_id": box_id,
                "cascaded_samples": cascaded,
            },
        )
        return True

    # -----------------------------
    # Public API: samples
    # -----------------------------

    @_serialized
    async def async_create_sample(self, fields: SampleCreate) -> Sample | None:
        """Create an active sample in an empty cell of an existing box."""

        box = self._require_box(fields.get("box_id"))
        payload = validate_sample_create(fields, box=box)
        if payload["position"] in occupant_map(self._samples_by_id.values(), box.id):
            raise ValidationError("position is already occupied")
        owner = self._require_owner()
        try:
            sample = await self._store.async_create_sample(owner, dict(payload))
        except StoreError as exc:
            self._record_failure("create_sample", exc, box_id=box.id)
            return None

        self._samples_by_id[sample.id] = sample
        LOGGER.debug(
            "Sample created",
            extra={
                "domain": DOMAIN,
                "op": "create_sample",
                "sample_id": sample.id,
                "box_id": box.id,
                "position": sample.position,
            },
        )
        return sample

    @_serialized
    async def async_update_sample(self, sample_id: str, fields: SampleUpdate) -> bool:
        """Write only the changed descriptive fields, then merge them locally."""

        current = self._samples_by_id.get(sample_id)
        if current is None:
            return False
        if current.status == SampleStatus.DELETED:
            raise ValidationError("deleted samples cannot be edited")
        changed = validate_sample_update(current, fields)
        if not changed:
            return True
        try:
            await self._store.async_update_sample(sample_id, dict(changed))
        except StoreError as exc:
            self._record_failure("update_sample", exc, sample_id=sample_id)
            return False

        self._samples_by_id[sample_id] = apply_sample_update(current, dict(changed))
        LOGGER.debug(
            "Sample updated",
            extra={
                "domain": DOMAIN,
                "op": "update_sample",
                "sample_id": sample_id,
                "fields": sorted(changed),
            },
        )
        return True

    @_serialized
    async def async_archive_sample(self, sample_id: str) -> bool:
        current = self._samples_by_id.get(sample_id)
        if current is None:
            return False
        if current.status == SampleStatus.ARCHIVED:
            return True
        if current.status == SampleStatus.DELETED:
            raise ValidationError("deleted samples cannot be archived")

        target = archived(current)
        try:
            await self._store.async_update_sample(
                sample_id,
                {"status": target.status, "box_id": target.box_id, "position": target.position},
            )
        except StoreError as exc:
            self._record_failure("archive_sample", exc, sample_id=sample_id)
            return False

        self._samples_by_id[sample_id] = target
        LOGGER.debug(
            "Sample archived",
            extra={"domain": DOMAIN, "op": "archive_sample", "sample_id": sample_id},
        )
        return True

    @_serialized
    async def async_move_sample(
        self, sample_id: str, target_box_id: str, target_position: int
    ) -> bool:
        """Move a sample, swapping with the occupant of the target cell if any."""

        source = self._samples_by_id.get(sample_id)
        if source is None:
            return False
        if not is_active(source):
            raise ValidationError("only active samples can be moved")
        box = self._require_box(target_box_id)
        validate_position(box.layout, target_position)

        decision = decide_move(
            occupant_map(self._samples_by_id.values(), box.id),
            source,
            box.id,
            target_position,
        )

        if isinstance(decision, Relocate):
            if source.box_id == decision.box_id and source.position == decision.position:
                return True
            try:
                await self._store.async_update_sample(
                    sample_id, {"box_id": decision.box_id, "position": decision.position}
                )
            except StoreError as exc:
                self._record_failure("move_sample", exc, sample_id=sample_id)
                return False
            self._samples_by_id[sample_id] = replace(
                source, box_id=decision.box_id, position=decision.position
            )
            LOGGER.debug(
                "Sample moved",
                extra={
                    "domain": DOMAIN,
                    "op": "move_sample",
                    "sample_id": sample_id,
                    "box_id": decision.box_id,
                    "position": decision.position,
                },
            )
            return True

        occupant = self._samples_by_id[decision.occupant_id]
        results = await asyncio.gather(
            self._store.async_update_sample(
                occupant.id,
                {"box_id": decision.source_box_id, "position": decision.source_position},
            ),
            self._store.async_update_sample(
                source.id,
                {"box_id": decision.target_box_id, "position": decision.target_position},
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, StoreError):
                raise result

        # Best-effort dual write: both sides land in the cache whatever the outcome
        self._samples_by_id[occupant.id] = replace(
            occupant, box_id=decision.source_box_id, position=decision.source_position
        )
        self._samples_by_id[source.id] = replace(
            source, box_id=decision.target_box_id, position=decision.target_position
        )

        failures = [result for result in results if isinstance(result, StoreError)]
        if failures:
            self._record_failure(
                "swap_sample",
                failures[0],
                sample_id=sample_id,
                occupant_id=occupant.id,
                failed_writes=len(failures),
            )
            return False
        LOGGER.debug(
            "Samples swapped",
            extra={
                "domain": DOMAIN,
                "op": "swap_sample",
                "sample_id": sample_id,
                "occupant_id": occupant.id,
            },
        )
        return True

    @_serialized
    async def async_copy_sample(self, sample_id: str) -> Sample | None:
        """Duplicate a sample into the lowest free cell of its box.

        Raises CapacityError (and records ``last_error``) when the box is full.
        """

        source = self._samples_by_id.get(sample_id)
        if source is None:
            return None
        if not is_active(source):
            raise ValidationError("only active samples can be copied")
        box = self._require_box(source.box_id)

        occupied = occupant_map(self._samples_by_id.values(), box.id)
        position = first_fit_position(occupied.keys(), box.capacity)
        if position is None:
            self._last_error = CONTAINER_FULL_MESSAGE
            LOGGER.warning(
                "Cannot copy sample: box is full",
                extra={
                    "domain": DOMAIN,
                    "op": "copy_sample",
                    "sample_id": sample_id,
                    "box_id": box.id,
                },
            )
            raise CapacityError(CONTAINER_FULL_MESSAGE)

        fields: dict[str, Any] = {field: getattr(source, field) for field in COPY_FIELDS}
        fields.update({"box_id": box.id, "position": position})
        try:
            copy = await self._store.async_create_sample(self._require_owner(), fields)
        except StoreError as exc:
            self._record_failure("copy_sample", exc, sample_id=sample_id)
            return None

        self._samples_by_id[copy.id] = copy
        LOGGER.debug(
            "Sample copied",
            extra={
                "domain": DOMAIN,
                "op": "copy_sample",
                "sample_id": sample_id,
                "copy_id": copy.id,
                "position": position,
            },
        )
        return copy

    # -----------------------------
    # Public API: queries
    # -----------------------------

    def search(self, query: str | None) -> list[Sample]:
        return search_samples(self._samples_by_id.values(), self._boxes_by_id, query)

    def get_box(self, box_id: str) -> Box:
        box = self._boxes_by_id.get(box_id)
        if box is None:
            raise NotFoundError("box not found")
        return box

    def get_sample(self, sample_id: str) -> Sample:
        sample = self._samples_by_id.get(sample_id)
        if sample is None or sample.status == SampleStatus.DELETED:
            raise NotFoundError("sample not found")
        return sample

    def list_boxes(self) -> list[Box]:
        return list(self._boxes_by_id.values())

    def active_samples(self) -> list[Sample]:
        return [s for s in self._samples_by_id.values() if is_active(s)]

    def archived_samples(self) -> list[Sample]:
        return [
            s for s in self._samples_by_id.values() if s.status == SampleStatus.ARCHIVED
        ]

    def box_samples(self, box_id: str) -> dict[int, Sample]:
        """Map position -> active sample for one box (grid view)."""

        box = self.get_box(box_id)
        return {
            position: self._samples_by_id[sid]
            for position, sid in occupant_map(self._samples_by_id.values(), box.id).items()
        }

    def box_occupancy(self, box_id: str) -> tuple[int, int]:
        """Return ``(used, capacity)`` for one box."""

        box = self.get_box(box_id)
        used = len(occupant_map(self._samples_by_id.values(), box.id))
        return used, box.capacity
