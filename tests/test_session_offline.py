"""Tests for per-owner repository sessions.

Scenarios:
- Sessions are created lazily, loaded once and cached per owner
- Owners only see their own boxes
- A failed initial load raises StoreError and caches nothing
- Users without an id fall back to the local owner
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from custom_components.labfreezer.const import DEFAULT_OWNER_ID, DOMAIN
from custom_components.labfreezer.exceptions import StoreError
from custom_components.labfreezer.session import async_get_repository, owner_id_from_user
from custom_components.labfreezer.storage import MemorySampleStore
from homeassistant.core import HomeAssistant


@pytest.mark.asyncio
async def test_sessions_are_cached_per_owner(hass: HomeAssistant) -> None:
    store = MemorySampleStore()
    await store.async_create_box("alice", "Alice box")
    hass.data[DOMAIN] = {"store": store}

    alice = await async_get_repository(hass, "alice")
    bob = await async_get_repository(hass, "bob")

    assert alice is await async_get_repository(hass, "alice")
    assert alice is not bob
    assert [b.name for b in alice.list_boxes()] == ["Alice box"]
    assert bob.list_boxes() == []


@pytest.mark.asyncio
async def test_failed_load_is_not_cached(hass: HomeAssistant, monkeypatch) -> None:
    store = MemorySampleStore()
    hass.data[DOMAIN] = {"store": store}

    async def _fail(_owner_id: str):
        raise StoreError("backend offline")

    monkeypatch.setattr(store, "async_list_boxes", _fail)
    with pytest.raises(StoreError, match="backend offline"):
        await async_get_repository(hass, "alice")
    assert hass.data[DOMAIN]["repositories"] == {}

    monkeypatch.undo()
    repo = await async_get_repository(hass, "alice")
    assert repo.owner_id == "alice"


@pytest.mark.asyncio
async def test_missing_store_raises(hass: HomeAssistant) -> None:
    with pytest.raises(StoreError):
        await async_get_repository(hass, "alice")


def test_owner_id_from_user() -> None:
    assert owner_id_from_user(SimpleNamespace(id="u1")) == "u1"
    assert owner_id_from_user(None) == DEFAULT_OWNER_ID
