"""
Authenticated transport for the EduSphere API.
Token injection, response classification and the download exemption.
"""
from edusphere.transport.client import DEFAULT_TIMEOUT, Envelope, TransportClient

__all__ = [
    "DEFAULT_TIMEOUT",
    "Envelope",
    "TransportClient",
]
