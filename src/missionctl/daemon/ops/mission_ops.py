"""missions/* operation handlers."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ...contracts.v1 import MissionPatch, MissionQuery, ServerError, ServerResponse
from ...errors import MissionArchivedError, MissionNotFoundError, MissionctlError, RegistryError
from ...kernel.missions import MissionService

Handler = Callable[[MissionService, Dict[str, Any]], ServerResponse]


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> ServerResponse:
    return ServerResponse(ok=False, error=ServerError(code=code, message=message, details=details or {}))


def _from_exception(e: MissionctlError) -> ServerResponse:
    details = {"hint": e.hint} if e.hint else {}
    if isinstance(e, MissionNotFoundError):
        return _error("mission_not_found", str(e), details=details)
    if isinstance(e, MissionArchivedError):
        return _error("mission_archived", str(e), details=details)
    if isinstance(e, RegistryError):
        return _error("internal_error", str(e), details=details)
    return _error("invalid_request", str(e), details=details)


def _mission_id(args: Dict[str, Any]) -> str:
    return str(args.get("id") or "").strip()


def _guarded(fn: Handler) -> Handler:
    def wrapper(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
        try:
            return fn(service, args)
        except MissionctlError as e:
            return _from_exception(e)

    wrapper.__name__ = fn.__name__
    wrapper.__doc__ = fn.__doc__
    return wrapper


def _requires_id(fn: Handler) -> Handler:
    def wrapper(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
        if not _mission_id(args):
            return _error("missing_id", "missing mission id")
        return fn(service, args)

    wrapper.__name__ = fn.__name__
    wrapper.__doc__ = fn.__doc__
    return wrapper


@_guarded
def handle_missions_list(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    try:
        query = MissionQuery.model_validate(args)
    except ValidationError as e:
        return _error("invalid_request", "invalid list filters", details={"error": str(e)})
    missions = service.list(include_archived=query.include_archived, cron_name=query.cron_name)
    return ServerResponse(ok=True, result={"missions": [m.model_dump() for m in missions]})


@_requires_id
@_guarded
def handle_missions_get(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.get(_mission_id(args))
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_update(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    fields = {k: args[k] for k in ("prompt", "config_snapshot", "session_name") if k in args}
    try:
        patch = MissionPatch.model_validate(fields)
    except ValidationError as e:
        return _error("invalid_request", "invalid mission patch", details={"error": str(e)})
    if patch.is_empty():
        return _error("invalid_request", "nothing to update")
    mission = service.update(_mission_id(args), patch)
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_stop(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.get(_mission_id(args))
    outcome = service.stop(mission.id)
    return ServerResponse(ok=True, result={"id": mission.id, "outcome": outcome})


@_guarded
def handle_missions_create(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.create(
        git_repo=str(args.get("repo") or "").strip(),
        prompt=str(args.get("prompt") or ""),
        cron_id=str(args.get("cron_id") or "").strip() or None,
        cron_name=str(args.get("cron_name") or "").strip() or None,
        config_snapshot=str(args.get("config_snapshot") or "").strip() or None,
    )
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_archive(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.archive(_mission_id(args))
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_heartbeat(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.heartbeat(_mission_id(args))
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_bind_pane(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    mission = service.bind_pane(_mission_id(args), str(args.get("pane") or ""))
    return ServerResponse(ok=True, result={"mission": mission.model_dump()})


@_requires_id
@_guarded
def handle_missions_remove(service: MissionService, args: Dict[str, Any]) -> ServerResponse:
    removed = service.remove(_mission_id(args))
    return ServerResponse(ok=True, result={"id": removed})


HANDLERS: Dict[str, Handler] = {
    "missions/list": handle_missions_list,
    "missions/get": handle_missions_get,
    "missions/update": handle_missions_update,
    "missions/stop": handle_missions_stop,
    "missions/create": handle_missions_create,
    "missions/archive": handle_missions_archive,
    "missions/heartbeat": handle_missions_heartbeat,
    "missions/bind_pane": handle_missions_bind_pane,
    "missions/remove": handle_missions_remove,
}
