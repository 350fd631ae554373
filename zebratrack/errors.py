"""Error taxonomy shared by the tracking, repository and sync layers."""

from __future__ import annotations

from typing import Optional

import requests


class ZebraError(RuntimeError):
    """Base class for every error the client reports to its caller."""

    code = "error"


class FrameAlreadyStarted(ZebraError):
    code = "frame_already_started"


class NoFrameStarted(ZebraError):
    code = "no_frame_started"


class InvalidTime(ZebraError):
    code = "invalid_time"


class InvalidOperation(ZebraError):
    code = "invalid_operation"


class NotFound(ZebraError):
    code = "not_found"


class RemoteUnavailable(ZebraError):
    """Transport or API failure while talking to the Zebra server."""

    code = "remote_unavailable"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        response: Optional[requests.Response] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


__all__ = [
    "ZebraError",
    "FrameAlreadyStarted",
    "NoFrameStarted",
    "InvalidTime",
    "InvalidOperation",
    "NotFound",
    "RemoteUnavailable",
]
