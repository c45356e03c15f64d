"""
Error taxonomy for the Jira bridge.

Only two kinds of failure are ever raised to callers:

- InvalidArgument: the caller sent something we refuse before talking to Jira.
- RemoteUnavailable: Jira could not be reached or answered with an error.

Unresolved custom fields, markup problems and unknown webhook events are not
errors; they degrade to pass-through values or are logged and ignored.
"""
from typing import Optional


class JiraBridgeError(Exception):
    """Base class for errors surfaced by the bridge."""

    code = "general"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


class InvalidArgument(JiraBridgeError):
    """Malformed or out-of-range caller input. Never retried."""

    code = "invalid_argument"


class RemoteUnavailable(JiraBridgeError):
    """A call to the Jira REST API failed (network, auth, 4xx/5xx)."""

    code = "remote_unavailable"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.status_code is not None:
            data["status"] = self.status_code
        return data
