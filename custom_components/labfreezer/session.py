"""Per-owner repository sessions kept in ``hass.data[DOMAIN]``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from homeassistant.core import HomeAssistant

from .const import DEFAULT_OWNER_ID, DOMAIN
from .exceptions import StoreError
from .repository import Repository
from .storage import SampleStore

LOGGER = logging.getLogger(__name__)


def owner_id_from_user(user: Any) -> str:
    """Return the owner id for a Home Assistant user, or the local owner."""

    user_id = getattr(user, "id", None)
    return user_id if isinstance(user_id, str) and user_id else DEFAULT_OWNER_ID


def _store(hass: HomeAssistant) -> SampleStore:
    bucket = hass.data.get(DOMAIN) or {}
    store = bucket.get("store")
    if store is None:
        raise StoreError("store not initialized; run integration setup")
    return store  # type: ignore[return-value]


async def async_get_repository(hass: HomeAssistant, owner_id: str) -> Repository:
    """Return the loaded Repository for ``owner_id``, creating it on first use.

    Raises StoreError when the initial load fails; nothing is cached then.
    """

    bucket = hass.data.setdefault(DOMAIN, {})
    repositories: dict[str, Repository] = bucket.setdefault("repositories", {})
    repo = repositories.get(owner_id)
    if repo is not None:
        return repo

    locks: dict[str, asyncio.Lock] = bucket.setdefault("repository_locks", {})
    lock = locks.setdefault(owner_id, asyncio.Lock())
    async with lock:
        repo = repositories.get(owner_id)
        if repo is not None:
            return repo
        repo = Repository(_store(hass))
        if not await repo.async_load_all(owner_id):
            raise StoreError(repo.last_error or "failed to load inventory")
        repositories[owner_id] = repo
        LOGGER.debug(
            "Repository session opened",
            extra={"domain": DOMAIN, "op": "open_session", "owner_id": owner_id},
        )
        return repo
