from __future__ import annotations

import json
import socket
from typing import Any, Dict, List, Optional

from ..contracts.v1 import Mission, ServerRequest, ServerResponse
from ..errors import ServerReplyError, ServerRequestError, ServerUnavailableError
from ..paths import HomePaths

DEFAULT_TIMEOUT_S = 60.0
MAX_RESPONSE_BYTES = 16_000_000
_REPLY_HINT = "the request may have been applied; check with 'missionctl mission ls'"


def _recv_line(s: socket.socket) -> bytes:
    buf = b""
    while b"\n" not in buf:
        chunk = s.recv(65536)
        if not chunk:
            break
        buf += chunk
        if len(buf) > MAX_RESPONSE_BYTES:
            break
    return buf.split(b"\n", 1)[0]


class ControlClient:
    """Typed access to the control server of one configuration root.

    `call` raises `ServerUnavailableError` when nothing accepts the connection,
    `ServerReplyError` when the request was sent but no valid reply came back,
    and `ServerRequestError` when the server answers `ok=false`.
    """

    def __init__(self, paths: HomePaths, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self.paths = paths
        self.timeout_s = timeout_s

    def request(self, op: str, args: Optional[Dict[str, Any]] = None, *, timeout_s: Optional[float] = None) -> ServerResponse:
        req = ServerRequest(op=op, args=dict(args or {}))
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
            s.settimeout(self.timeout_s if timeout_s is None else timeout_s)
            try:
                s.connect(str(self.paths.sock_path))
            except OSError as e:
                raise ServerUnavailableError(
                    f"control server unavailable at {self.paths.sock_path}: {e}",
                    hint="run 'missionctl server start'",
                ) from e
            # Past this point the server may have acted on the request.
            try:
                s.sendall((json.dumps(req.model_dump(), ensure_ascii=False) + "\n").encode("utf-8"))
                line = _recv_line(s)
            except OSError as e:
                raise ServerReplyError(f"{op}: no reply from control server: {e}", hint=_REPLY_HINT) from e
        if not line.strip():
            raise ServerReplyError(f"{op}: control server closed the connection without replying", hint=_REPLY_HINT)
        try:
            return ServerResponse.model_validate(json.loads(line.decode("utf-8", errors="replace")))
        except ValueError as e:
            raise ServerReplyError(f"{op}: malformed response from control server: {e}", hint=_REPLY_HINT) from e

    def call(self, op: str, args: Optional[Dict[str, Any]] = None, *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        resp = self.request(op, args, timeout_s=timeout_s)
        if not resp.ok:
            err = resp.error
            if err is None:
                raise ServerRequestError("internal_error", f"{op} failed")
            raise ServerRequestError(err.code, err.message, details=err.details)
        return resp.result

    def health(self, *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        return self.call("health", timeout_s=timeout_s)

    def list_missions(self, *, include_archived: bool = False, cron_name: Optional[str] = None) -> List[Mission]:
        args: Dict[str, Any] = {"include_archived": include_archived}
        if cron_name:
            args["cron_name"] = cron_name
        result = self.call("missions/list", args)
        return [Mission.model_validate(m) for m in result.get("missions") or []]

    def _mission(self, op: str, args: Dict[str, Any]) -> Mission:
        return Mission.model_validate(self.call(op, args).get("mission") or {})

    def get_mission(self, mission_id: str) -> Mission:
        return self._mission("missions/get", {"id": mission_id})

    def create_mission(
        self,
        *,
        repo: str = "",
        prompt: str = "",
        cron_id: Optional[str] = None,
        cron_name: Optional[str] = None,
        config_snapshot: Optional[str] = None,
    ) -> Mission:
        args: Dict[str, Any] = {"repo": repo, "prompt": prompt}
        for k, v in (("cron_id", cron_id), ("cron_name", cron_name), ("config_snapshot", config_snapshot)):
            if v:
                args[k] = v
        return self._mission("missions/create", args)

    def update_mission(
        self,
        mission_id: str,
        *,
        prompt: Optional[str] = None,
        config_snapshot: Optional[str] = None,
        session_name: Optional[str] = None,
    ) -> Mission:
        args: Dict[str, Any] = {"id": mission_id}
        for k, v in (("prompt", prompt), ("config_snapshot", config_snapshot), ("session_name", session_name)):
            if v is not None:
                args[k] = v
        return self._mission("missions/update", args)

    def stop_mission(self, mission_id: str) -> str:
        return str(self.call("missions/stop", {"id": mission_id}).get("outcome") or "")

    def archive_mission(self, mission_id: str) -> Mission:
        return self._mission("missions/archive", {"id": mission_id})

    def heartbeat(self, mission_id: str) -> Mission:
        return self._mission("missions/heartbeat", {"id": mission_id})

    def bind_pane(self, mission_id: str, pane: str) -> Mission:
        return self._mission("missions/bind_pane", {"id": mission_id, "pane": pane})

    def remove_mission(self, mission_id: str) -> str:
        return str(self.call("missions/remove", {"id": mission_id}).get("id") or "")
