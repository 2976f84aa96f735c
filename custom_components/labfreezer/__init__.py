"""LabFreezer integration bootstrap.

This module initializes the integration, prepares persistent storage, and
registers the services and WebSocket commands. Repository sessions are opened
lazily per Home Assistant user (see ``session.py``).
"""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv

from . import services as services_mod
from . import ws as ws_mod
from .const import DOMAIN
from .exceptions import StoreError
from .storage import DomainStore

LOGGER = logging.getLogger(__name__)


# This integration is config-entry only; no YAML configuration is accepted.
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, _config: dict) -> bool:
    """Set up the LabFreezer domain at Home Assistant startup.

    Initializes an empty domain bucket in hass.data with no side effects.
    """
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up LabFreezer from a config entry."""
    bucket = hass.data.setdefault(DOMAIN, {})

    store = DomainStore(hass)
    try:
        payload = await store.async_load()
    except StoreError as exc:
        LOGGER.error(
            "Storage validation failed during setup",
            extra={
                "domain": DOMAIN,
                "op": "setup_storage",
                "schema_version": store.schema_version,
            },
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage validation failed") from exc
    _log_storage_health(payload, schema_version=store.schema_version)

    bucket["store"] = store
    bucket["repositories"] = {}

    services_mod.setup(hass)
    ws_mod.setup(hass)

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry.

    Removes services and drops the store and repository sessions. WebSocket
    commands stay registered (Home Assistant offers no unregister); they
    answer with a store error until the entry is set up again.
    """

    services_mod.unload(hass)

    bucket = hass.data.get(DOMAIN) or {}
    bucket.pop("store", None)
    bucket.pop("repositories", None)
    bucket.pop("repository_locks", None)

    return True


def _log_storage_health(payload: dict[str, Any], *, schema_version: int) -> None:
    """Log storage health summary after validation."""

    box_count = len(payload.get("boxes") or {})
    sample_count = len(payload.get("samples") or {})

    level = logging.WARNING if box_count == 0 and sample_count == 0 else logging.DEBUG
    LOGGER.log(
        level,
        "Storage health: schema_version=%s boxes=%s samples=%s",
        schema_version,
        box_count,
        sample_count,
        extra={
            "domain": DOMAIN,
            "op": "setup_storage_health",
            "schema_version": schema_version,
            "boxes_count": box_count,
            "samples_count": sample_count,
        },
    )
