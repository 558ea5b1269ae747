"""
EduSphere client: authenticated transport and streaming chat for the
EduSphere academic-advising service.
"""
from edusphere.api import AdvisingClient
from edusphere.credentials import CredentialStore, LocalStore
from edusphere.errors import (
    HttpError,
    NetworkError,
    RequestTimeoutError,
    SessionInvalidated,
    TransportError,
    user_notice,
)
from edusphere.session import CancelToken, ConversationSession, SessionBusyError, TurnOutcome

__version__ = "0.3.0"

__all__ = [
    "AdvisingClient",
    "CancelToken",
    "ConversationSession",
    "CredentialStore",
    "HttpError",
    "LocalStore",
    "NetworkError",
    "RequestTimeoutError",
    "SessionBusyError",
    "SessionInvalidated",
    "TransportError",
    "TurnOutcome",
    "user_notice",
]
