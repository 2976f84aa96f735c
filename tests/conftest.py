"""Shared fixtures for LabFreezer tests.

Core tests run the repository against ``FlakySampleStore``, an in-memory
store that records every call and can reject selected operations. Tests that
need a running Home Assistant use the ``hass`` fixtures provided by
pytest-homeassistant-custom-component.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from custom_components.labfreezer.exceptions import StoreError
from custom_components.labfreezer.models import Box, Sample
from custom_components.labfreezer.repository import Repository
from custom_components.labfreezer.storage import MemorySampleStore

OWNER = "owner-1"


class FlakySampleStore(MemorySampleStore):
    """Memory store with call recording and failure injection.

    - ``fail_ops``: operation names that raise StoreError.
    - ``fail_sample_ids``: sample ids whose updates raise StoreError.
    - ``yield_on_commit``: suspend inside every commit, as a persisted store does.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []
        self.fail_ops: set[str] = set()
        self.fail_sample_ids: set[str] = set()
        self.yield_on_commit = False

    def _check(self, op: str, sample_id: str | None = None) -> None:
        self.calls.append(op)
        if op in self.fail_ops or (sample_id is not None and sample_id in self.fail_sample_ids):
            raise StoreError(f"{op} rejected")

    async def _async_commit(self, payload: dict[str, Any]) -> None:
        if self.yield_on_commit:
            await asyncio.sleep(0)

    @property
    def writes(self) -> list[str]:
        return [c for c in self.calls if not c.startswith("list_")]

    async def async_list_boxes(self, owner_id: str):
        self._check("list_boxes")
        return await super().async_list_boxes(owner_id)

    async def async_list_samples(self, owner_id: str):
        self._check("list_samples")
        return await super().async_list_samples(owner_id)

    async def async_create_box(self, owner_id: str, name: str, **kwargs: Any):
        self._check("create_box")
        return await super().async_create_box(owner_id, name, **kwargs)

    async def async_delete_box(self, box_id: str) -> None:
        self._check("delete_box")
        await super().async_delete_box(box_id)

    async def async_create_sample(self, owner_id: str, fields: dict[str, Any]):
        self._check("create_sample")
        return await super().async_create_sample(owner_id, fields)

    async def async_update_sample(self, sample_id: str, fields: dict[str, Any]) -> None:
        self._check("update_sample", sample_id)
        await super().async_update_sample(sample_id, fields)


@pytest.fixture
def store() -> FlakySampleStore:
    return FlakySampleStore()


@pytest.fixture
async def repo(store: FlakySampleStore) -> Repository:
    repository = Repository(store)
    assert await repository.async_load_all(OWNER)
    store.calls.clear()
    return repository


@pytest.fixture
def add_box(repo: Repository) -> Callable[..., Awaitable[Box]]:
    async def _add(name: str = "Box") -> Box:
        box = await repo.async_create_box(name)
        assert box is not None
        return box

    return _add


@pytest.fixture
def add_sample(repo: Repository) -> Callable[..., Awaitable[Sample]]:
    async def _add(box: Box, position: int, name: str = "Sample", **fields: Any) -> Sample:
        sample = await repo.async_create_sample(
            {
                "box_id": box.id,
                "position": position,
                "sample_number": fields.pop("sample_number", f"S-{position:03d}"),
                "name": name,
                **fields,
            }
        )
        assert sample is not None
        return sample

    return _add
