"""
Transport client: one httpx.AsyncClient with uniform token injection and
uniform response classification.

Every outbound request passes through a request hook that reads the
credential store at send time and sets (or strips) the Authorization header.
Every response or failure passes through _classify, which is the only place
allowed to clear credentials as a consequence of a response:

  1. 401 on a path outside the download exemption → clear the token,
     notify subscribers, raise SessionInvalidated
  2. deadline exceeded → RequestTimeoutError (never NetworkError)
  3. any other httpx request failure (connect, read, content decoding)
     → NetworkError
  4. anything else → the response (2xx) or HttpError (non-2xx), unchanged

Responses are always opened as streams so the status is classified before
any body is read.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

import httpx

from edusphere.credentials import CredentialStore
from edusphere.errors import (
    HttpError,
    NetworkError,
    RequestTimeoutError,
    SessionInvalidated,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 480  # seconds


@dataclass
class Envelope:
    """One outbound request. Ephemeral: built, sent, dropped."""
    method: str
    path: str
    json: Any = None
    data: dict | None = None
    files: dict | None = None
    params: dict | None = None
    headers: dict[str, str] = field(default_factory=dict)


class TransportClient:
    """Request/response exchanges against the EduSphere API."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = DEFAULT_TIMEOUT,
        download_pattern: str = "/download",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self.download_pattern = re.compile(download_pattern)
        self._listeners: list[Callable[[], None]] = []
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
            event_hooks={"request": [self._sign]},
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _sign(self, request: httpx.Request):
        """Attach the current bearer token, or send unauthenticated."""
        token = self.credentials.get()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            request.headers.pop("Authorization", None)

    def on_session_invalidated(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Subscribe to session invalidation. Returns an unsubscribe function.
        Callbacks run after the token has been cleared.
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify_invalidated(self):
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error("Session invalidation listener %r failed: %s", callback, e)

    def is_download(self, path: str) -> bool:
        return bool(self.download_pattern.search(path))

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    async def _classify(self, envelope: Envelope, response: httpx.Response) -> httpx.Response:
        """
        Decide on the status line alone, before touching the body: a 401
        clears the session even when its body cannot be read.
        """
        if response.is_success:
            return response

        status = response.status_code
        if status == 401 and not self.is_download(envelope.path):
            await response.aclose()
            logger.info("401 on %s %s, clearing session", envelope.method, envelope.path)
            self.credentials.clear()
            self._notify_invalidated()
            raise SessionInvalidated("Session invalidated by server", envelope.path)

        body, data = "", None
        try:
            await response.aread()
            body = response.text
            data = response.json()
        except httpx.RequestError as e:
            logger.debug("Error body of %s %s unreadable: %s", envelope.method, envelope.path, e)
        except ValueError:
            pass
        finally:
            await response.aclose()
        logger.debug("%s %s failed with HTTP %d", envelope.method, envelope.path, status)
        raise HttpError(status, body, envelope.path, data)

    def _timed_out(self, envelope: Envelope, t0: float) -> RequestTimeoutError:
        elapsed = time.monotonic() - t0
        logger.warning(
            "%s %s timed out after %.1fs (deadline %ss)",
            envelope.method, envelope.path, elapsed, self.timeout,
        )
        return RequestTimeoutError(f"Timeout after {self.timeout}s", envelope.path)

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------

    def _build(self, envelope: Envelope) -> httpx.Request:
        return self._client.build_request(
            envelope.method,
            envelope.path,
            json=envelope.json,
            data=envelope.data,
            files=envelope.files,
            params=envelope.params,
            headers=envelope.headers,
        )

    async def _exchange(self, request: httpx.Request, envelope: Envelope, stream: bool) -> httpx.Response:
        t0 = time.monotonic()
        response = await self._client.send(request, stream=True)
        logger.debug(
            "← %s %s %d (%.0fms)",
            envelope.method, envelope.path, response.status_code,
            (time.monotonic() - t0) * 1000,
        )
        response = await self._classify(envelope, response)
        if not stream:
            try:
                await response.aread()
            finally:
                await response.aclose()
        return response

    async def _dispatch(self, envelope: Envelope, stream: bool) -> httpx.Response:
        request = self._build(envelope)
        logger.debug("→ %s %s", envelope.method, envelope.path)
        t0 = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._exchange(request, envelope, stream),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise self._timed_out(envelope, t0) from e
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", envelope.method, envelope.path, e)
            raise NetworkError(str(e) or e.__class__.__name__, envelope.path) from e

    async def send(self, envelope: Envelope) -> httpx.Response:
        """Perform one exchange; the body is fully read on return."""
        return await self._dispatch(envelope, stream=False)

    @asynccontextmanager
    async def stream(self, envelope: Envelope) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming exchange. The deadline bounds obtaining the
        response head only; reading the body is not separately bounded.
        """
        response = await self._dispatch(envelope, stream=True)
        try:
            yield response
        finally:
            await response.aclose()

    async def aiter_bytes(self, response: httpx.Response, path: str = "") -> AsyncIterator[bytes]:
        """Raw body chunks, with httpx failures mapped onto our taxonomy."""
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            raise RequestTimeoutError("Stream read timed out", path) from e
        except httpx.RequestError as e:
            raise NetworkError(str(e) or e.__class__.__name__, path) from e

    async def aclose(self):
        await self._client.aclose()
