"""
Error taxonomy for the EduSphere client.

    TransportError
      ├── NetworkError         no response was obtained
      ├── HttpError            server answered with a non-2xx status
      ├── RequestTimeoutError  the exchange exceeded the configured deadline
      └── SessionInvalidated   401 outside the download exemption

DecodeAnomaly is raised and swallowed inside the stream decoder; it never
reaches callers.
"""

from __future__ import annotations

TIMEOUT_NOTICE = "The request took too long and was aborted. Please try again."
GENERIC_NOTICE = "Something went wrong. Please try again."
SESSION_NOTICE = "Your session has ended. Please log in again."


class TransportError(Exception):
    """Base class for every failure surfaced by the transport client."""

    def __init__(self, message: str = "", path: str = ""):
        super().__init__(message)
        self.path = path


class NetworkError(TransportError):
    """No response was obtained (connection refused, reset, DNS, ...)."""


class HttpError(TransportError):
    """The server responded with a failure status."""

    def __init__(self, status: int, body: str = "", path: str = "", data=None):
        super().__init__(f"HTTP {status}: {body[:200]}", path)
        self.status = status
        self.body = body
        self.data = data

    @property
    def server_message(self) -> str:
        """The server's `error` field, when the body was a JSON object carrying one."""
        if isinstance(self.data, dict):
            msg = self.data.get("error")
            if isinstance(msg, str):
                return msg
        return ""


class RequestTimeoutError(TransportError):
    """The exchange exceeded the client's deadline."""


class SessionInvalidated(TransportError):
    """The server rejected our credentials; the stored token has been cleared."""


class DecodeAnomaly(ValueError):
    """A stream line that could not be decoded."""


def user_notice(exc: BaseException) -> str:
    """Map an error to the text shown to the user."""
    if isinstance(exc, RequestTimeoutError):
        return TIMEOUT_NOTICE
    if isinstance(exc, SessionInvalidated):
        return SESSION_NOTICE
    if isinstance(exc, HttpError) and exc.server_message:
        return exc.server_message
    return GENERIC_NOTICE
