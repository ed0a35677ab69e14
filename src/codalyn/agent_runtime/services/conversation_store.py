"""Conversation persistence boundary.

The agent host saves the full message sequence once a run completes and loads
it back to rebuild memory; nothing is written per step.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from ..config import get_settings
from ..models.error_types import ConversationStoreError
from ..models.messages import Message

logger = structlog.get_logger()

_MESSAGES = TypeAdapter(list[Message])
_SESSION_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class ConversationStore(ABC):
    """Saves and loads the message history of a session."""

    @abstractmethod
    async def save(self, session_id: str, messages: Sequence[Message]) -> None:
        """Replace the stored history of a session."""

    @abstractmethod
    async def load(self, session_id: str) -> list[Message]:
        """Stored history of a session, empty when none exists."""


class InMemoryConversationStore(ConversationStore):
    """Process-local store, used in tests and single-process hosts."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[Message]] = {}

    async def save(self, session_id: str, messages: Sequence[Message]) -> None:
        self._sessions[session_id] = list(messages)

    async def load(self, session_id: str) -> list[Message]:
        return list(self._sessions.get(session_id, []))


class FileConversationStore(ConversationStore):
    """One JSON document per session under a storage directory."""

    def __init__(self, storage_path: Path | str | None = None) -> None:
        """
        Initialize file-backed store.

        Args:
            storage_path: Directory holding session files (defaults to settings)
        """
        self._storage_path = Path(storage_path or get_settings().conversation_store_dir)
        self._storage_path.mkdir(parents=True, exist_ok=True)
        logger.info("conversation_store_initialized", storage_path=str(self._storage_path))

    def _session_file(self, session_id: str) -> Path:
        if not _SESSION_ID.match(session_id) or session_id in (".", ".."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self._storage_path / f"{session_id}.json"

    async def save(self, session_id: str, messages: Sequence[Message]) -> None:
        """
        Write the session history atomically.

        Raises:
            ConversationStoreError: If the file cannot be written
        """
        target = self._session_file(session_id)
        data = _MESSAGES.dump_json(list(messages), indent=2)
        tmp = target.with_suffix(".json.tmp")
        try:
            await asyncio.to_thread(tmp.write_bytes, data)
            await asyncio.to_thread(tmp.replace, target)
        except OSError as e:
            logger.error("conversation_save_failed", session_id=session_id, error=str(e))
            raise ConversationStoreError(
                f"Failed to save conversation {session_id}: {e}"
            ) from e

        logger.info(
            "conversation_saved",
            session_id=session_id,
            messages=len(messages),
            size_bytes=len(data),
        )

    async def load(self, session_id: str) -> list[Message]:
        """
        Read the session history.

        Raises:
            ConversationStoreError: If the file is unreadable or corrupt
        """
        target = self._session_file(session_id)
        if not target.exists():
            return []
        try:
            data = await asyncio.to_thread(target.read_bytes)
            messages = _MESSAGES.validate_json(data)
        except (OSError, ValidationError) as e:
            logger.error("conversation_load_failed", session_id=session_id, error=str(e))
            raise ConversationStoreError(
                f"Failed to load conversation {session_id}: {e}"
            ) from e

        logger.debug("conversation_loaded", session_id=session_id, messages=len(messages))
        return messages
