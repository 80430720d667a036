from __future__ import annotations

from typing import Any, Dict, Optional


class MissionctlError(RuntimeError):
    """Base error for user-visible failures. `hint` names the command to run instead."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        self.hint = hint


class RegistryError(MissionctlError):
    pass


class MissionNotFoundError(MissionctlError):
    pass


class MissionArchivedError(MissionctlError):
    pass


class PickerUnavailableError(MissionctlError):
    pass


class PaneGoneError(MissionctlError):
    pass


class ReadinessTimeoutError(MissionctlError):
    pass


class ServerUnavailableError(MissionctlError):
    pass


class ServerRequestError(MissionctlError):
    """The server answered with ok=false."""

    def __init__(self, code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, hint=str((details or {}).get("hint") or ""))
        self.code = code
        self.details = dict(details or {})


class ServerReplyError(MissionctlError):
    """The request reached the server but no valid reply came back; it may have been applied."""
