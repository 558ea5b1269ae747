"""
AdvisingClient: the collaborator-facing API of the EduSphere client.

Owns the client's state for one login lifetime: the persistent LocalStore,
the CredentialStore on top of it, and the TransportClient that signs and
classifies every request. Views and the CLI talk to this object only.

    async with AdvisingClient.from_config() as client:
        await client.login("ada", "secret")
        await client.analyze("transcript.pdf", preference="data science")
        session = client.chat()
        result = await session.send_turn("Which course should I take first?")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import httpx

from edusphere.config import get_config
from edusphere.credentials import USER_KEY, CredentialStore, LocalStore
from edusphere.session import ConversationSession
from edusphere.stream.transcript import Conversation
from edusphere.transport.client import DEFAULT_TIMEOUT, Envelope, TransportClient

logger = logging.getLogger(__name__)

RECO_KEY = "last_reco_id"
TRANSCRIPT_KEY = "last_transcript_id"
UPLOADS_KEY = "uploaded_docs"


class AdvisingClient:
    """EduSphere API facade."""

    def __init__(
        self,
        base_url: str,
        store: LocalStore | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        download_pattern: str = "/download",
        stream_path: str = "/chat/stream",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store if store is not None else LocalStore()
        self.credentials = CredentialStore(self.store)
        self.stream_path = stream_path
        self.transport = TransportClient(
            base_url,
            self.credentials,
            timeout=timeout,
            download_pattern=download_pattern,
            transport=transport,
        )
        # the server rejected our token: drop the profile along with it
        self.transport.on_session_invalidated(lambda: self.store.remove(USER_KEY))

    @classmethod
    def from_config(cls, cfg: dict | None = None, **kwargs) -> "AdvisingClient":
        cfg = cfg or get_config()
        api_cfg = cfg.get("api", {})
        storage_cfg = cfg.get("storage", {})
        return cls(
            base_url=api_cfg.get("base_url", "http://localhost:8080/api"),
            store=LocalStore(storage_cfg.get("path")),
            timeout=float(api_cfg.get("timeout", DEFAULT_TIMEOUT)),
            download_pattern=api_cfg.get("download_pattern", "/download"),
            stream_path=api_cfg.get("stream_path", "/chat/stream"),
            **kwargs,
        )

    async def __aenter__(self) -> "AdvisingClient":
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self.transport.aclose()

    def on_session_invalidated(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self.transport.on_session_invalidated(callback)

    async def _json(self, method: str, path: str, **kwargs):
        response = await self.transport.send(Envelope(method=method, path=path, **kwargs))
        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _start_session(self, data: dict) -> dict:
        token = data.get("access_token")
        if not token:
            raise ValueError("login response carried no access token")
        user = data.get("user") or {}
        self.credentials.set(token)
        self.store.set(USER_KEY, user)
        logger.info("Logged in as %s", user.get("username", "?"))
        return user

    async def login(self, username: str, password: str) -> dict:
        data = await self._json("POST", "/users/login", json={"username": username, "password": password})
        return self._start_session(data)

    async def register(self, username: str, full_name: str, email: str, password: str) -> dict:
        """
        Create an account. When the server also returns a token the user is
        logged in right away; otherwise they have to log in explicitly.
        """
        data = await self._json(
            "POST",
            "/users",
            json={
                "username": username,
                "full_name": full_name,
                "email": email,
                "password": password,
            },
        ) or {}
        if data.get("access_token"):
            return self._start_session(data)
        return data.get("user") or data

    def logout(self):
        self.credentials.clear()
        self.store.remove(USER_KEY)

    def current_user(self) -> dict | None:
        if not self.credentials.present:
            return None
        return self.store.get(USER_KEY)

    # ------------------------------------------------------------------
    # Transcripts & recommendations
    # ------------------------------------------------------------------

    async def upload_transcript(self, path: str | Path) -> dict:
        path = Path(path)
        with open(path, "rb") as f:
            data = await self._json(
                "POST",
                "/transcripts/upload",
                files={"file": (path.name, f.read())},
            )
        transcript_id = data.get("id")
        self.store.set(TRANSCRIPT_KEY, transcript_id)
        uploads = list(self.store.get(UPLOADS_KEY) or [])
        uploads.append({"id": transcript_id, "name": path.name})
        self.store.set(UPLOADS_KEY, uploads)
        return data

    async def list_transcripts(self) -> list:
        return await self._json("GET", "/transcripts") or []

    async def get_transcript(self, transcript_id) -> dict:
        return await self._json("GET", f"/transcripts/{transcript_id}")

    async def create_recommendation(self, transcript_id, preference: str = "") -> dict:
        data = await self._json(
            "POST",
            "/recommendations",
            json={"transcript_id": transcript_id, "preference": preference},
        )
        self.store.set(RECO_KEY, data.get("id"))
        return data

    async def analyze(self, path: str | Path, preference: str = "") -> dict:
        """Upload a transcript and turn it into a recommendation."""
        transcript = await self.upload_transcript(path)
        return await self.create_recommendation(transcript.get("id"), preference)

    async def list_recommendations(self) -> list:
        return await self._json("GET", "/recommendations") or []

    async def get_recommendation(self, reco_id) -> dict:
        return await self._json("GET", f"/recommendations/{reco_id}")

    async def remove_course(self, course_id, reco_id=None) -> list:
        """Drop a course from a recommendation; returns the remaining courses."""
        reco_id = reco_id or self.store.get(RECO_KEY)
        if not reco_id:
            raise ValueError("no active recommendation to modify")
        data = await self._json("DELETE", f"/recommendations/{reco_id}/courses/{course_id}") or {}
        return data.get("courses") or []

    @property
    def recommendation_id(self):
        return self.store.get(RECO_KEY)

    # ------------------------------------------------------------------
    # Scholarships & summaries
    # ------------------------------------------------------------------

    async def generate_scholarships(self) -> list:
        data = await self._json("POST", "/scholarships/generate") or {}
        scholarships = data.get("scholarships")
        return scholarships if isinstance(scholarships, list) else []

    async def generate_summary(self) -> str:
        data = await self._json("POST", "/summaries/generate") or {}
        return data.get("summary_text") or data.get("text") or ""

    async def save_summary(self, summary_text: str, include_scholarships: bool = False) -> dict | None:
        reco_id = self.store.get(RECO_KEY)
        if not reco_id:
            raise ValueError("no recommendation available to save yet")
        if not summary_text:
            raise ValueError("generate a transcript summary before saving")
        return await self._json(
            "POST",
            "/summaries",
            json={
                "recommendation_id": reco_id,
                "summary_text": summary_text,
                "include_scholarships": include_scholarships,
            },
        )

    async def list_summaries(self) -> list:
        return await self._json("GET", "/summaries") or []

    async def delete_summary(self, summary_id):
        await self.transport.send(Envelope(method="DELETE", path=f"/summaries/{summary_id}"))

    async def download(self, path: str) -> bytes:
        """Fetch a binary resource. A 401 here does not end the session."""
        response = await self.transport.send(
            Envelope(method="GET", path=path, headers={"Accept": "*/*"})
        )
        return response.content

    async def download_summary(self, summary_id, dest: str | Path | None = None) -> Path:
        blob = await self.download(f"/summaries/{summary_id}/download")
        dest = Path(dest) if dest else Path(f"summary_{summary_id}.pdf")
        dest.write_bytes(blob)
        logger.info("Saved summary %s to %s (%d bytes)", summary_id, dest, len(blob))
        return dest

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def chat(
        self,
        on_update: Callable[[Conversation], None] | None = None,
    ) -> ConversationSession:
        """A fresh conversation that carries the current recommendation as context."""
        return ConversationSession(
            self.transport,
            stream_path=self.stream_path,
            context_id=lambda: self.store.get(RECO_KEY),
            on_update=on_update,
        )
