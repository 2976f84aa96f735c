"""Integration bootstrap tests.

Scenarios:
- async_setup creates the domain bucket without side effects
- async_setup_entry loads storage, logs a health line and registers services
- Corrupted storage raises ConfigEntryNotReady
- Unload removes services and drops sessions
"""

from __future__ import annotations

import logging

import pytest
from custom_components.labfreezer import async_setup, async_setup_entry, async_unload_entry
from custom_components.labfreezer.const import DOMAIN
from custom_components.labfreezer.storage import STORAGE_KEY, DomainStore
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from pytest_homeassistant_custom_component.common import MockConfigEntry


def _entry(hass: HomeAssistant) -> MockConfigEntry:
    entry = MockConfigEntry(domain=DOMAIN, title="LabFreezer", data={})
    entry.add_to_hass(hass)
    return entry


@pytest.mark.asyncio
async def test_async_setup_creates_bucket(hass: HomeAssistant) -> None:
    assert await async_setup(hass, {})
    assert hass.data[DOMAIN] == {}


@pytest.mark.asyncio
async def test_setup_entry_registers_store_and_services(hass: HomeAssistant, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="custom_components.labfreezer")

    assert await async_setup_entry(hass, _entry(hass))

    bucket = hass.data[DOMAIN]
    assert isinstance(bucket["store"], DomainStore)
    assert bucket["repositories"] == {}
    assert hass.services.has_service(DOMAIN, "sample_move")
    assert any("Storage health" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_setup_entry_rejects_corrupted_storage(hass: HomeAssistant, hass_storage) -> None:
    hass_storage[STORAGE_KEY] = {
        "version": 1,
        "minor_version": 1,
        "key": STORAGE_KEY,
        "data": ["not", "a", "dict"],
    }

    with pytest.raises(ConfigEntryNotReady):
        await async_setup_entry(hass, _entry(hass))
    assert "store" not in hass.data.get(DOMAIN, {})


@pytest.mark.asyncio
async def test_unload_entry_removes_services(hass: HomeAssistant) -> None:
    entry = _entry(hass)
    assert await async_setup_entry(hass, entry)

    assert await async_unload_entry(hass, entry)

    assert not hass.services.has_service(DOMAIN, "sample_move")
    assert "store" not in hass.data[DOMAIN]
    assert "repositories" not in hass.data[DOMAIN]

    # Setting up again re-registers services
    assert await async_setup_entry(hass, entry)
    assert hass.services.has_service(DOMAIN, "sample_move")
