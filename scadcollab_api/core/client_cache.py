"""Per-tab client state that survives a reload."""

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from ..config import settings

logger = logging.getLogger(__name__)


class _CacheState(BaseModel):
    active_session_id: str | None = None
    last_read: dict[str, datetime] = Field(default_factory=dict)
    joined_sessions: list[str] = Field(default_factory=list)
    pending_prompt: str | None = None


class ClientSessionCache:
    """Local mirror of which session a tab works on and what it has read.

    Nothing here is synchronized through the store. With a ``path`` the state
    is written to a JSON file after every change and reloaded on start;
    without one it only lives in memory. The active session id is a
    bootstrap hint: components receive the id they operate on explicitly.
    """

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else None
        self._state = self._load()

    @classmethod
    def from_settings(cls) -> "ClientSessionCache":
        return cls(settings.client_cache_path)

    def _load(self) -> _CacheState:
        if self.path is None or not self.path.exists():
            return _CacheState()
        try:
            return _CacheState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable client cache {self.path}: {e}")
            return _CacheState()

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(self._state.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)

    @staticmethod
    def _read_key(session_id: str, user_id: str) -> str:
        return f"{session_id}:{user_id}"

    # Active session

    @property
    def active_session_id(self) -> str | None:
        return self._state.active_session_id

    def set_active_session(self, session_id: str | None) -> None:
        self._state.active_session_id = session_id
        self._save()

    # Team chat read marks

    def get_last_read(self, session_id: str, user_id: str) -> datetime | None:
        return self._state.last_read.get(self._read_key(session_id, user_id))

    def set_last_read(self, session_id: str, user_id: str, timestamp: datetime) -> None:
        self._state.last_read[self._read_key(session_id, user_id)] = timestamp
        self._save()

    # Join markers, so presence is attached once per session and tab

    def has_joined(self, session_id: str) -> bool:
        return session_id in self._state.joined_sessions

    def mark_joined(self, session_id: str) -> None:
        if session_id not in self._state.joined_sessions:
            self._state.joined_sessions.append(session_id)
            self._save()

    def forget_joined(self, session_id: str) -> None:
        if session_id in self._state.joined_sessions:
            self._state.joined_sessions.remove(session_id)
            self._save()

    # Initial prompt typed on the landing page, consumed once

    @property
    def pending_prompt(self) -> str | None:
        return self._state.pending_prompt

    def set_pending_prompt(self, prompt: str | None) -> None:
        self._state.pending_prompt = prompt
        self._save()

    def take_pending_prompt(self) -> str | None:
        """Return and clear the pending prompt."""
        prompt = self._state.pending_prompt
        if prompt is not None:
            self._state.pending_prompt = None
            self._save()
        return prompt
