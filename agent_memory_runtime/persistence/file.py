"""
File-based thread store.

Threads are stored in hidden directories:
- Global: ~/.agent_memory/threads/
- Project: ./.agent_memory/threads/

Each thread is a single JSON document holding the thread record, its
messages and its memory note, for easy inspection and debugging.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from agent_memory_runtime.exceptions import PersistenceError
from agent_memory_runtime.persistence.base import (
    MemoryMessage,
    Scope,
    Thread,
    ThreadStore,
    order_messages,
    utcnow,
    window_around,
)

logger = logging.getLogger(__name__)


def _get_base_path(scope: Scope, project_dir: Optional[Path] = None) -> Path:
    """Get the base path for a given scope."""
    if scope == Scope.GLOBAL:
        return Path.home() / ".agent_memory"
    elif scope == Scope.PROJECT:
        base = project_dir or Path.cwd()
        return base / ".agent_memory"
    else:
        raise ValueError(f"Cannot get path for scope: {scope}")


class _JSONEncoder(json.JSONEncoder):
    """JSON encoder that understands datetimes in tool args and results."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, cls=_JSONEncoder, indent=2)


class FileThreadStore(ThreadStore):
    """
    File-based thread store.

    Stores threads in JSON files:
    - {base_path}/threads/{thread_id}.json

    Writes go through a temporary file and a rename so a crash mid-write
    never leaves a truncated document behind.
    """

    def __init__(self, project_dir: Optional[Path] = None, scope: Scope = Scope.PROJECT):
        self._project_dir = Path(project_dir) if project_dir else None
        self._scope = scope

    def _get_threads_path(self) -> Path:
        return _get_base_path(self._scope, self._project_dir) / "threads"

    def _get_thread_path(self, thread_id: str) -> Path:
        safe_id = thread_id.replace("/", "_").replace("\\", "_")
        return self._get_threads_path() / f"{safe_id}.json"

    def _read(self, thread_id: str) -> Optional[dict]:
        path = self._get_thread_path(thread_id)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Failed to read thread {thread_id}: {e}", operation="read") from e

    def _write(self, thread_id: str, document: dict) -> None:
        path = self._get_thread_path(thread_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w") as f:
                f.write(_json_dumps(document))
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write thread {thread_id}: {e}", operation="write") from e

    def _require(self, thread_id: str, operation: str) -> dict:
        document = self._read(thread_id)
        if document is None:
            raise PersistenceError(f"Thread not found: {thread_id}", operation=operation)
        return document

    async def create_thread(
        self,
        resource_id: str,
        title: Optional[str] = None,
        thread_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Thread:
        if thread_id:
            existing = self._read(thread_id)
            if existing is not None:
                return Thread.from_dict(existing["thread"])

        thread = Thread(
            id=thread_id or str(uuid4()),
            resource_id=resource_id,
            title=title,
            metadata=metadata or {},
        )
        self._write(thread.id, {
            "thread": thread.to_dict(),
            "messages": [],
            "system_message": None,
            "next_sequence": 0,
        })
        return thread

    async def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        document = self._read(thread_id)
        if document is None:
            return None
        return Thread.from_dict(document["thread"])

    async def update_thread_title(self, thread_id: str, title: str) -> Thread:
        document = self._require(thread_id, "update_thread_title")
        thread = Thread.from_dict(document["thread"])
        thread.title = title
        thread.updated_at = utcnow()
        document["thread"] = thread.to_dict()
        self._write(thread_id, document)
        return thread

    async def list_threads(self, resource_id: str) -> list[Thread]:
        threads_path = self._get_threads_path()
        if not threads_path.exists():
            return []

        threads = []
        for file in threads_path.glob("*.json"):
            try:
                with open(file, "r") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError):
                logger.warning(f"Skipping unreadable thread file: {file}")
                continue
            thread = Thread.from_dict(data["thread"])
            if thread.resource_id == resource_id:
                threads.append(thread)

        threads.sort(key=lambda t: t.updated_at, reverse=True)
        return threads

    async def save_messages(self, messages: list[MemoryMessage]) -> list[MemoryMessage]:
        by_thread: dict[str, list[MemoryMessage]] = {}
        for message in messages:
            by_thread.setdefault(message.thread_id, []).append(message)

        documents = {
            thread_id: self._require(thread_id, "save_messages") for thread_id in by_thread
        }

        for thread_id, thread_messages in by_thread.items():
            document = documents[thread_id]
            for message in thread_messages:
                message.sequence = document["next_sequence"]
                document["next_sequence"] += 1
                document["messages"].append(message.to_dict())
            document["thread"]["updated_at"] = utcnow().isoformat()
            self._write(thread_id, document)

        return messages

    def _load_messages(self, thread_id: str) -> list[MemoryMessage]:
        document = self._read(thread_id)
        if document is None:
            return []
        return order_messages([MemoryMessage.from_dict(m) for m in document["messages"]])

    async def get_messages(
        self,
        thread_id: str,
        last: Optional[int] = None,
    ) -> list[MemoryMessage]:
        messages = self._load_messages(thread_id)
        if last is not None:
            messages = messages[-last:] if last > 0 else []
        return messages

    async def get_messages_around(
        self,
        thread_id: str,
        message_ids: list[str],
        message_range: int = 0,
    ) -> list[MemoryMessage]:
        return window_around(self._load_messages(thread_id), message_ids, message_range)

    async def get_system_message(self, thread_id: str) -> Optional[str]:
        document = self._read(thread_id)
        return document.get("system_message") if document else None

    async def set_system_message(self, thread_id: str, content: Optional[str]) -> None:
        document = self._require(thread_id, "set_system_message")
        document["system_message"] = content
        self._write(thread_id, document)
