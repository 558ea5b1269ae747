"""
Shared fixtures: in-memory state and an httpx MockTransport factory.
"""

import httpx
import pytest

from edusphere.credentials import CredentialStore, LocalStore
from edusphere.transport.client import TransportClient

BASE_URL = "http://edusphere.test/api"


def sse_body(*chunks: bytes | str):
    """Async byte stream yielding the given chunks exactly as split."""
    async def gen():
        for chunk in chunks:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
    return gen()


@pytest.fixture
def sse():
    return sse_body


@pytest.fixture
def store():
    return LocalStore()


@pytest.fixture
def credentials(store):
    return CredentialStore(store)


@pytest.fixture
def make_transport(credentials):
    """Build a TransportClient whose requests are answered by `handler`."""
    def factory(handler, **kwargs) -> TransportClient:
        return TransportClient(
            BASE_URL,
            credentials,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )
    return factory
