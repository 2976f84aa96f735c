"""WebSocket command handlers for LabFreezer.

Implements the request/response commands the frontend uses to drive the
inventory: loading and selection, box and sample operations, search and
export. Every command acts on the repository session of the connection's
user. Adheres to the envelope: input {id, type, ...payload}, output
result_message/error_message.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol
from homeassistant.components import websocket_api
from homeassistant.core import HomeAssistant

from .const import COATING_OPTIONS, DOMAIN, INTEGRATION_VERSION, SOLVENT_OPTIONS
from .exceptions import (
    CapacityError,
    LabFreezerError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from .export import (
    box_to_dict,
    build_csv_rows,
    build_snapshot,
    export_filename,
    render_csv,
    sample_to_dict,
)
from .models import DESCRIPTIVE_FIELDS
from .repository import Repository
from .session import async_get_repository, owner_id_from_user
from .storage import CURRENT_SCHEMA_VERSION

LOGGER = logging.getLogger(__name__)


async def _repo(hass: HomeAssistant, conn) -> Repository:
    return await async_get_repository(hass, owner_id_from_user(getattr(conn, "user", None)))


def _require_ok(repo: Repository, ok: Any) -> None:
    """Turn a recorded repository failure into a StoreError."""

    if ok is None or ok is False:
        raise StoreError(repo.last_error or "store write failed")


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, CapacityError):
        return "capacity_error"
    if isinstance(exc, StoreError):
        return "store_error"
    return "unknown_error"


def _error_message(_id: int, exc: LabFreezerError, *, context: dict[str, Any]):
    level = logging.ERROR if isinstance(exc, StoreError) else logging.WARNING
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, **context})
    return websocket_api.error_message(_id, _error_code(exc), str(exc))


# -----------------------------
# Unified exception handling for WS handlers
# -----------------------------

_WSHandler = Callable[[HomeAssistant, Any, dict], Awaitable[Any]]


def _context_from_msg(op: str, msg: dict, fields: tuple[str, ...]) -> dict[str, Any]:
    context: dict[str, Any] = {"op": op}
    for field in fields:
        if field not in msg:
            continue
        # Avoid the reserved LogRecord key 'name'
        key = f"{op.split('_')[0]}_name" if field == "name" else field
        context[key] = msg.get(field)
    return context


def ws_guard(
    op: str, context_fields: tuple[str, ...] = ()
) -> Callable[[_WSHandler], _WSHandler]:
    """Decorator to map domain exceptions to unified WS errors.

    Builds a structured logging context from selected fields of the incoming
    message and answers with an error envelope ``{code, message}``.
    """

    def decorator(func: _WSHandler) -> _WSHandler:
        async def wrapper(hass: HomeAssistant, conn, msg):
            try:
                return await func(hass, conn, msg)
            except LabFreezerError as exc:
                context = _context_from_msg(op, msg, context_fields)
                conn.send_message(_error_message(msg.get("id", 0), exc, context=context))
                return None

        return wrapper

    return decorator


# -----------------------------
# Serialization helpers
# -----------------------------


def _serialize_box(repo: Repository, box_id: str) -> dict[str, Any]:
    used, capacity = repo.box_occupancy(box_id)
    return {**box_to_dict(repo.get_box(box_id)), "used": used, "capacity": capacity}


def _serialize_state(repo: Repository) -> dict[str, Any]:
    return {
        "owner_id": repo.owner_id,
        "current_box_id": repo.current_box_id,
        "last_error": repo.last_error,
        "boxes": [_serialize_box(repo, box.id) for box in repo.list_boxes()],
        "options": {"coating": list(COATING_OPTIONS), "solvent": list(SOLVENT_OPTIONS)},
    }


def _serialize_search_hit(repo: Repository, sample) -> dict[str, Any]:
    box = repo.boxes.get(sample.box_id) if sample.box_id else None
    return {**sample_to_dict(sample), "box_name": box.name if box is not None else None}


def _sample_fields(msg: dict) -> dict[str, Any]:
    return {k: msg[k] for k in DESCRIPTIVE_FIELDS if k in msg}


def _send_result(conn, msg: dict, result: Any) -> None:
    conn.send_message(websocket_api.result_message(msg.get("id", 0), result))


_TEXT = vol.Any(str, None)
_NUMBER = vol.Any(int, float, str, None)

_DESCRIPTIVE_SCHEMA: dict[Any, Any] = {
    vol.Optional("size"): _TEXT,
    vol.Optional("coating"): _TEXT,
    vol.Optional("solvent"): _TEXT,
    vol.Optional("molar_conc"): _NUMBER,
    vol.Optional("mass_conc"): _NUMBER,
    vol.Optional("notes"): _TEXT,
}


# -----------------------------
# Session commands
# -----------------------------


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/version"})
@websocket_api.async_response
async def ws_version(hass: HomeAssistant, conn, msg):
    bucket = hass.data.get(DOMAIN) or {}
    schema_version = getattr(bucket.get("store"), "schema_version", CURRENT_SCHEMA_VERSION)
    _send_result(
        conn,
        msg,
        {"integration_version": INTEGRATION_VERSION, "schema_version": schema_version},
    )


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/load"})
@websocket_api.async_response
@ws_guard("load")
async def ws_load(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    _require_ok(repo, await repo.async_load_all(repo.owner_id))
    _send_result(conn, msg, _serialize_state(repo))


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/select", vol.Required("selection"): vol.Any(str, None)}
)
@websocket_api.async_response
@ws_guard("select", ("selection",))
async def ws_select(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    repo.set_current_selection(msg.get("selection"))
    _send_result(conn, msg, {"current_box_id": repo.current_box_id})


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/error/get"})
@websocket_api.async_response
@ws_guard("error_get")
async def ws_error_get(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    _send_result(conn, msg, {"last_error": repo.last_error})


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/error/clear"})
@websocket_api.async_response
@ws_guard("error_clear")
async def ws_error_clear(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    repo.clear_error()
    _send_result(conn, msg, {"last_error": None})


# -----------------------------
# Box commands
# -----------------------------


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/box/create", vol.Required("name"): str}
)
@websocket_api.async_response
@ws_guard("box_create", ("name",))
async def ws_box_create(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    box = await repo.async_create_box(msg["name"])
    _require_ok(repo, box)
    _send_result(conn, msg, _serialize_box(repo, box.id))


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/box/delete", vol.Required("box_id"): str}
)
@websocket_api.async_response
@ws_guard("box_delete", ("box_id",))
async def ws_box_delete(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    box = repo.get_box(msg["box_id"])
    _require_ok(repo, await repo.async_delete_box(box.id))
    _send_result(conn, msg, {"box_id": box.id, "current_box_id": repo.current_box_id})


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/box/list"})
@websocket_api.async_response
@ws_guard("box_list")
async def ws_box_list(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    _send_result(conn, msg, [_serialize_box(repo, box.id) for box in repo.list_boxes()])


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/box/get", vol.Required("box_id"): str}
)
@websocket_api.async_response
@ws_guard("box_get", ("box_id",))
async def ws_box_get(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    cells = repo.box_samples(msg["box_id"])
    _send_result(
        conn,
        msg,
        {
            "box": _serialize_box(repo, msg["box_id"]),
            "samples": [sample_to_dict(cells[position]) for position in sorted(cells)],
        },
    )


# -----------------------------
# Sample commands
# -----------------------------


@websocket_api.websocket_command(
    {
        vol.Required("type"): "labfreezer/sample/create",
        vol.Required("box_id"): str,
        vol.Required("position"): int,
        vol.Required("sample_number"): str,
        vol.Required("name"): str,
        **_DESCRIPTIVE_SCHEMA,
    }
)
@websocket_api.async_response
@ws_guard("sample_create", ("box_id", "position", "name"))
async def ws_sample_create(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    fields = {"box_id": msg["box_id"], "position": msg["position"], **_sample_fields(msg)}
    sample = await repo.async_create_sample(fields)  # type: ignore[arg-type]
    _require_ok(repo, sample)
    _send_result(conn, msg, sample_to_dict(sample))


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/sample/get", vol.Required("sample_id"): str}
)
@websocket_api.async_response
@ws_guard("sample_get", ("sample_id",))
async def ws_sample_get(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    _send_result(conn, msg, sample_to_dict(repo.get_sample(msg["sample_id"])))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "labfreezer/sample/update",
        vol.Required("sample_id"): str,
        vol.Optional("sample_number"): str,
        vol.Optional("name"): str,
        **_DESCRIPTIVE_SCHEMA,
    }
)
@websocket_api.async_response
@ws_guard("sample_update", ("sample_id",))
async def ws_sample_update(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    sample_id = repo.get_sample(msg["sample_id"]).id
    _require_ok(repo, await repo.async_update_sample(sample_id, _sample_fields(msg)))  # type: ignore[arg-type]
    _send_result(conn, msg, sample_to_dict(repo.get_sample(sample_id)))


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/sample/archive", vol.Required("sample_id"): str}
)
@websocket_api.async_response
@ws_guard("sample_archive", ("sample_id",))
async def ws_sample_archive(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    sample_id = repo.get_sample(msg["sample_id"]).id
    _require_ok(repo, await repo.async_archive_sample(sample_id))
    _send_result(conn, msg, sample_to_dict(repo.get_sample(sample_id)))


@websocket_api.websocket_command(
    {
        vol.Required("type"): "labfreezer/sample/move",
        vol.Required("sample_id"): str,
        vol.Required("box_id"): str,
        vol.Required("position"): int,
    }
)
@websocket_api.async_response
@ws_guard("sample_move", ("sample_id", "box_id", "position"))
async def ws_sample_move(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    source = repo.get_sample(msg["sample_id"])
    occupant = repo.box_samples(msg["box_id"]).get(msg["position"])
    _require_ok(
        repo, await repo.async_move_sample(source.id, msg["box_id"], msg["position"])
    )
    result: dict[str, Any] = {"sample": sample_to_dict(repo.get_sample(source.id))}
    if occupant is not None and occupant.id != source.id:
        result["swapped"] = sample_to_dict(repo.get_sample(occupant.id))
    _send_result(conn, msg, result)


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/sample/copy", vol.Required("sample_id"): str}
)
@websocket_api.async_response
@ws_guard("sample_copy", ("sample_id",))
async def ws_sample_copy(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    copy = await repo.async_copy_sample(repo.get_sample(msg["sample_id"]).id)
    _require_ok(repo, copy)
    _send_result(conn, msg, sample_to_dict(copy))


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/sample/trash"})
@websocket_api.async_response
@ws_guard("sample_trash")
async def ws_sample_trash(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    _send_result(conn, msg, [sample_to_dict(s) for s in repo.archived_samples()])


# -----------------------------
# Query and export commands
# -----------------------------


@websocket_api.websocket_command(
    {vol.Required("type"): "labfreezer/search", vol.Required("query"): vol.Any(str, None)}
)
@websocket_api.async_response
@ws_guard("search", ("query",))
async def ws_search(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    hits = repo.search(msg.get("query"))
    _send_result(conn, msg, [_serialize_search_hit(repo, sample) for sample in hits])


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/export/json"})
@websocket_api.async_response
@ws_guard("export_json")
async def ws_export_json(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    snapshot = build_snapshot(repo.list_boxes(), repo.samples.values())
    _send_result(conn, msg, {"filename": export_filename("json"), "data": snapshot})


@websocket_api.websocket_command({vol.Required("type"): "labfreezer/export/csv"})
@websocket_api.async_response
@ws_guard("export_csv")
async def ws_export_csv(hass: HomeAssistant, conn, msg):
    repo = await _repo(hass, conn)
    content = render_csv(build_csv_rows(repo.boxes, repo.samples.values()))
    _send_result(conn, msg, {"filename": export_filename("csv"), "content": content})


# -----------------------------
# Registration
# -----------------------------


def setup(hass: HomeAssistant) -> None:
    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("ws_registered"):
        return

    handlers = [
        ws_version,
        ws_load,
        ws_select,
        ws_error_get,
        ws_error_clear,
        ws_box_create,
        ws_box_delete,
        ws_box_list,
        ws_box_get,
        ws_sample_create,
        ws_sample_get,
        ws_sample_update,
        ws_sample_archive,
        ws_sample_move,
        ws_sample_copy,
        ws_sample_trash,
        ws_search,
        ws_export_json,
        ws_export_csv,
    ]

    for handler in handlers:
        websocket_api.async_register_command(hass, handler)

    bucket["ws_registered"] = True
