"""Durable store adapters for LabFreezer.

The inventory core depends only on the abstract ``SampleStore`` contract.
Two backends share the row handling in ``RowSampleStore``:

- ``MemorySampleStore`` keeps rows in process memory.
- ``DomainStore`` persists rows through Home Assistant's Store.

Data shape persisted by ``DomainStore``:
    {
        "schema_version": int,
        "boxes": {id -> BoxRow},
        "samples": {id -> SampleRow},
    }

Rows are snake_case and owner-scoped by ``user_id``. Every write either
completes (rows replaced) or raises ``StoreError`` leaving rows unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from copy import deepcopy
from datetime import UTC, datetime
from typing import Any, Final

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from .const import DEFAULT_LAYOUT, DOMAIN
from .exceptions import StoreError
from .models import (
    Box,
    BoxLayout,
    Sample,
    SampleStatus,
    box_from_row,
    box_to_row,
    format_timestamp,
    new_uuid4_str,
    sample_fields_to_row,
    sample_from_row,
)

_LOGGER = logging.getLogger(__name__)

# Current schema version for persisted payloads
CURRENT_SCHEMA_VERSION: Final[int] = 1

# Storage key under which the persisted dataset is saved
STORAGE_KEY: Final[str] = "labfreezer_store"


def _empty_payload() -> dict[str, Any]:
    """Create a new empty payload matching the current schema.

    Returns a fresh dict each time to avoid shared mutation across callers.
    """

    return {"schema_version": CURRENT_SCHEMA_VERSION, "boxes": {}, "samples": {}}


def _now() -> datetime:
    return datetime.now(tz=UTC).replace(microsecond=0)


class SampleStore(ABC):
    """Contract the inventory core requires from a durable store.

    All operations may raise ``StoreError``.
    """

    @abstractmethod
    async def async_list_boxes(self, owner_id: str) -> list[Box]:
        """Return all boxes belonging to ``owner_id``."""

    @abstractmethod
    async def async_list_samples(self, owner_id: str) -> list[Sample]:
        """Return all samples belonging to ``owner_id``, whatever their status."""

    @abstractmethod
    async def async_create_box(
        self,
        owner_id: str,
        name: str,
        *,
        description: str | None = None,
        layout: BoxLayout = BoxLayout(DEFAULT_LAYOUT),
    ) -> Box:
        """Persist a new box and return it with its assigned id."""

    @abstractmethod
    async def async_delete_box(self, box_id: str) -> None:
        """Hard-delete a box; its samples transition to ``deleted``."""

    @abstractmethod
    async def async_create_sample(self, owner_id: str, fields: dict[str, Any]) -> Sample:
        """Persist a new active sample and return it with id and created_at."""

    @abstractmethod
    async def async_update_sample(self, sample_id: str, fields: dict[str, Any]) -> None:
        """Write a partial set of sample fields."""


class RowSampleStore(SampleStore):
    """Row-keeping store; subclasses decide how a staged payload is committed."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = _empty_payload()
        self._lock = asyncio.Lock()

    async def _async_ensure_loaded(self) -> None:
        """Hook for backends that load rows lazily."""

    async def _async_commit(self, payload: dict[str, Any]) -> None:
        """Hook for backends that persist the staged payload."""

    async def _async_write(self, op: str, mutate: Callable[[dict[str, Any]], Any]) -> Any:
        """Apply ``mutate`` to a staged copy, commit it, then swap it in."""

        await self._async_ensure_loaded()
        async with self._lock:
            staged = deepcopy(self._data)
            result = mutate(staged)
            start_time = time.monotonic()
            try:
                await self._async_commit(staged)
            except StoreError:
                raise
            except Exception as exc:
                _LOGGER.error(
                    "Failed to commit store write",
                    extra={"domain": DOMAIN, "op": op},
                    exc_info=True,
                )
                raise StoreError(f"failed to persist {op}") from exc
            self._data = staged
            _LOGGER.debug(
                "Store write committed",
                extra={
                    "domain": DOMAIN,
                    "op": op,
                    "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                },
            )
            return result

    # -----------------------------
    # Reads
    # -----------------------------

    async def async_list_boxes(self, owner_id: str) -> list[Box]:
        await self._async_ensure_loaded()
        rows = self._data["boxes"].values()
        return [box_from_row(row) for row in rows if row.get("user_id") == owner_id]

    async def async_list_samples(self, owner_id: str) -> list[Sample]:
        await self._async_ensure_loaded()
        rows = self._data["samples"].values()
        return [sample_from_row(row) for row in rows if row.get("user_id") == owner_id]

    # -----------------------------
    # Writes
    # -----------------------------

    async def async_create_box(
        self,
        owner_id: str,
        name: str,
        *,
        description: str | None = None,
        layout: BoxLayout = BoxLayout(DEFAULT_LAYOUT),
    ) -> Box:
        box = Box(
            id=new_uuid4_str(),
            name=name,
            description=description,
            layout=BoxLayout(layout),
            created_at=_now(),
        )

        def _mutate(data: dict[str, Any]) -> None:
            data["boxes"][box.id] = box_to_row(box, owner_id=owner_id)

        await self._async_write("create_box", _mutate)
        return box

    async def async_delete_box(self, box_id: str) -> None:
        def _mutate(data: dict[str, Any]) -> None:
            data["boxes"].pop(box_id, None)
            # Samples are never hard-deleted; they follow their box into "deleted"
            for row in data["samples"].values():
                if row.get("box_id") == box_id and row.get("status") == SampleStatus.ACTIVE:
                    row["status"] = str(SampleStatus.DELETED)

        await self._async_write("delete_box", _mutate)

    async def async_create_sample(self, owner_id: str, fields: dict[str, Any]) -> Sample:
        row = sample_fields_to_row(dict(fields))
        row.update(
            {
                "id": new_uuid4_str(),
                "status": str(SampleStatus.ACTIVE),
                "user_id": owner_id,
                "created_at": format_timestamp(_now()),
            }
        )
        # Validate the row before it is staged
        sample = sample_from_row(row)

        def _mutate(data: dict[str, Any]) -> None:
            data["samples"][sample.id] = row

        await self._async_write("create_sample", _mutate)
        return sample

    async def async_update_sample(self, sample_id: str, fields: dict[str, Any]) -> None:
        columns = sample_fields_to_row(dict(fields))
        immutable = {"id", "user_id", "created_at"} & set(columns)
        if immutable:
            raise StoreError(f"columns are immutable: {', '.join(sorted(immutable))}")

        def _mutate(data: dict[str, Any]) -> None:
            row = data["samples"].get(sample_id)
            if row is None:
                raise StoreError("sample not found")
            row.update(columns)

        await self._async_write("update_sample", _mutate)


class MemorySampleStore(RowSampleStore):
    """In-process store; rows live as long as the instance."""

    def export_rows(self) -> dict[str, Any]:
        return deepcopy(self._data)


class DomainStore(RowSampleStore):
    """Schema-aware row store persisted through Home Assistant's Store.

    This class should be exposed via ``hass.data[DOMAIN]["store"]``.
    """

    def __init__(
        self, hass: HomeAssistant, *, key: str = STORAGE_KEY, version: int = CURRENT_SCHEMA_VERSION
    ) -> None:
        super().__init__()
        self._hass = hass
        self._store: Store[dict[str, Any]] = Store(hass, version, key)
        self._schema_version = version
        self._key = key
        self._loaded = False

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def key(self) -> str:
        return self._key

    async def async_load(self) -> dict[str, Any]:
        """Load the persisted dataset into memory and return a copy of it."""

        try:
            raw = await self._store.async_load()
        except Exception as exc:
            _LOGGER.error(
                "Failed to read storage",
                extra={"domain": DOMAIN, "op": "load", "storage_key": self.key},
                exc_info=True,
            )
            raise StoreError("storage read failed") from exc

        payload = _empty_payload() if raw is None else self._validate_payload(raw)
        self._data = payload
        self._loaded = True
        return deepcopy(payload)

    def _validate_payload(self, raw: Any) -> dict[str, Any]:
        if not isinstance(raw, dict):
            _LOGGER.error(
                "Corrupted storage payload: expected dict, got %s",
                type(raw).__name__,
                extra={"domain": DOMAIN, "op": "load", "storage_key": self.key},
            )
            raise StoreError("corrupted storage payload: not a dict")
        version = raw.get("schema_version")
        if version != self._schema_version:
            raise StoreError(
                f"storage schema_version mismatch: expected {self._schema_version}, got {version}"
            )
        boxes = raw.get("boxes")
        samples = raw.get("samples")
        if not isinstance(boxes, dict) or not isinstance(samples, dict):
            raise StoreError("storage payload missing required collections")
        return deepcopy(raw)

    async def _async_ensure_loaded(self) -> None:
        if not self._loaded:
            await self.async_load()

    async def _async_commit(self, payload: dict[str, Any]) -> None:
        payload["schema_version"] = self._schema_version
        await self._store.async_save(payload)
