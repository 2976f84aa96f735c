"""Service registration and handlers for LabFreezer.

Exposes Home Assistant services under the ``labfreezer`` domain for box and
sample operations. Input is validated with voluptuous and operations are
delegated to the calling user's ``Repository`` session (the local owner when a
call carries no user, e.g. from an automation).

Errors from the domain layer and recorded store failures are logged with
contextual fields and do not raise stack traces.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall

from .const import DEFAULT_OWNER_ID, DOMAIN
from .exceptions import LabFreezerError, StoreError
from .models import DESCRIPTIVE_FIELDS
from .session import async_get_repository

LOGGER = logging.getLogger(__name__)


# -----------------------------
# Validation schemas
# -----------------------------

_TEXT = vol.Any(str, None)
_NUMBER = vol.Any(int, float, str, None)

_DESCRIPTIVE = {
    vol.Optional("size"): _TEXT,
    vol.Optional("coating"): _TEXT,
    vol.Optional("solvent"): _TEXT,
    vol.Optional("molar_conc"): _NUMBER,
    vol.Optional("mass_conc"): _NUMBER,
    vol.Optional("notes"): _TEXT,
}

SCHEMA_BOX_CREATE = vol.Schema({vol.Required("name"): str})

SCHEMA_BOX_DELETE = vol.Schema({vol.Required("box_id"): str})

SCHEMA_SAMPLE_CREATE = vol.Schema(
    {
        vol.Required("box_id"): str,
        vol.Required("position"): vol.Coerce(int),
        vol.Required("sample_number"): str,
        vol.Required("name"): str,
        **_DESCRIPTIVE,
    }
)

SCHEMA_SAMPLE_UPDATE = vol.Schema(
    {
        vol.Required("sample_id"): str,
        vol.Optional("sample_number"): str,
        vol.Optional("name"): str,
        **_DESCRIPTIVE,
    }
)

SCHEMA_SAMPLE_ARCHIVE = vol.Schema({vol.Required("sample_id"): str})

SCHEMA_SAMPLE_MOVE = vol.Schema(
    {
        vol.Required("sample_id"): str,
        vol.Required("box_id"): str,
        vol.Required("position"): vol.Coerce(int),
    }
)

SCHEMA_SAMPLE_COPY = vol.Schema({vol.Required("sample_id"): str})

SCHEMA_CLEAR_ERROR = vol.Schema({})


# -----------------------------
# Internal helpers
# -----------------------------


def _log_domain_error(op: str, context: dict[str, Any], exc: Exception) -> None:
    level = logging.ERROR if isinstance(exc, StoreError) else logging.WARNING
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, "op": op, **context})


def _ensure(result: Any, last_error: str | None) -> None:
    """Turn a recorded repository failure into a StoreError."""

    if result is None or result is False:
        raise StoreError(last_error or "store write failed")


# -----------------------------
# Service handlers (exported for tests)
# -----------------------------


async def service_box_create(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "box_create"
    try:
        payload = SCHEMA_BOX_CREATE(data)
        repo = await async_get_repository(hass, owner_id)
        box = await repo.async_create_box(payload["name"])
        _ensure(box, repo.last_error)
        LOGGER.debug(
            "Service box_create created box",
            extra={"domain": DOMAIN, "op": op, "box_id": box.id},
        )
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {"box_name": data.get("name")}, exc)


async def service_box_delete(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "box_delete"
    box_id = data.get("box_id")
    try:
        payload = SCHEMA_BOX_DELETE(data)
        repo = await async_get_repository(hass, owner_id)
        repo.get_box(payload["box_id"])
        _ensure(await repo.async_delete_box(payload["box_id"]), repo.last_error)
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {"box_id": box_id}, exc)


async def service_sample_create(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "sample_create"
    try:
        payload = SCHEMA_SAMPLE_CREATE(data)
        repo = await async_get_repository(hass, owner_id)
        sample = await repo.async_create_sample(payload)  # type: ignore[arg-type]
        _ensure(sample, repo.last_error)
        LOGGER.debug(
            "Service sample_create created sample",
            extra={"domain": DOMAIN, "op": op, "sample_id": sample.id},
        )
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(
            op, {"box_id": data.get("box_id"), "position": data.get("position")}, exc
        )


async def service_sample_update(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "sample_update"
    sample_id = data.get("sample_id")
    try:
        payload = SCHEMA_SAMPLE_UPDATE(data)
        update = {k: v for k, v in payload.items() if k in DESCRIPTIVE_FIELDS}
        repo = await async_get_repository(hass, owner_id)
        repo.get_sample(payload["sample_id"])
        result = await repo.async_update_sample(payload["sample_id"], update)  # type: ignore[arg-type]
        _ensure(result, repo.last_error)
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {"sample_id": sample_id}, exc)


async def service_sample_archive(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "sample_archive"
    sample_id = data.get("sample_id")
    try:
        payload = SCHEMA_SAMPLE_ARCHIVE(data)
        repo = await async_get_repository(hass, owner_id)
        repo.get_sample(payload["sample_id"])
        _ensure(await repo.async_archive_sample(payload["sample_id"]), repo.last_error)
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {"sample_id": sample_id}, exc)


async def service_sample_move(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "sample_move"
    sample_id = data.get("sample_id")
    try:
        payload = SCHEMA_SAMPLE_MOVE(data)
        repo = await async_get_repository(hass, owner_id)
        repo.get_sample(payload["sample_id"])
        result = await repo.async_move_sample(
            payload["sample_id"], payload["box_id"], payload["position"]
        )
        _ensure(result, repo.last_error)
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(
            op,
            {
                "sample_id": sample_id,
                "box_id": data.get("box_id"),
                "position": data.get("position"),
            },
            exc,
        )


async def service_sample_copy(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "sample_copy"
    sample_id = data.get("sample_id")
    try:
        payload = SCHEMA_SAMPLE_COPY(data)
        repo = await async_get_repository(hass, owner_id)
        repo.get_sample(payload["sample_id"])
        copy = await repo.async_copy_sample(payload["sample_id"])
        _ensure(copy, repo.last_error)
        LOGGER.debug(
            "Service sample_copy created copy",
            extra={"domain": DOMAIN, "op": op, "sample_id": sample_id, "copy_id": copy.id},
        )
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {"sample_id": sample_id}, exc)


async def service_clear_error(
    hass: HomeAssistant, data: dict, owner_id: str = DEFAULT_OWNER_ID
) -> None:
    op = "clear_error"
    try:
        SCHEMA_CLEAR_ERROR(data)
        repo = await async_get_repository(hass, owner_id)
        repo.clear_error()
    except (vol.Invalid, LabFreezerError) as exc:
        _log_domain_error(op, {}, exc)


# -----------------------------
# Registration
# -----------------------------

_ServiceHandler = Callable[[HomeAssistant, dict, str], Awaitable[None]]

SERVICES: dict[str, tuple[_ServiceHandler, vol.Schema]] = {
    "box_create": (service_box_create, SCHEMA_BOX_CREATE),
    "box_delete": (service_box_delete, SCHEMA_BOX_DELETE),
    "sample_create": (service_sample_create, SCHEMA_SAMPLE_CREATE),
    "sample_update": (service_sample_update, SCHEMA_SAMPLE_UPDATE),
    "sample_archive": (service_sample_archive, SCHEMA_SAMPLE_ARCHIVE),
    "sample_move": (service_sample_move, SCHEMA_SAMPLE_MOVE),
    "sample_copy": (service_sample_copy, SCHEMA_SAMPLE_COPY),
    "clear_error": (service_clear_error, SCHEMA_CLEAR_ERROR),
}


def _bind(hass: HomeAssistant, handler: _ServiceHandler) -> Callable[[ServiceCall], Awaitable[None]]:
    async def _async_handle(call: ServiceCall) -> None:
        await handler(hass, dict(call.data), call.context.user_id or DEFAULT_OWNER_ID)

    return _async_handle


def setup(hass: HomeAssistant) -> None:
    """Register labfreezer.* services on Home Assistant."""

    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("services_registered"):
        return

    # Home Assistant validates inputs against these schemas before invoking
    # the handler. Handlers are exported above for testability.
    for service, (handler, schema) in SERVICES.items():
        hass.services.async_register(DOMAIN, service, _bind(hass, handler), schema)

    bucket["services_registered"] = True


def unload(hass: HomeAssistant) -> None:
    """Remove labfreezer.* services."""

    bucket = hass.data.get(DOMAIN) or {}
    for service in SERVICES:
        hass.services.async_remove(DOMAIN, service)
    bucket.pop("services_registered", None)
