from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Sequence, Union

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from .schemas import CamelModel, RegQAnswer

logger = logging.getLogger(__name__)

CHAT_HISTORY_KEY = "regqChatHistory"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Offset-less timestamps are read as UTC so every stored datetime compares
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserMessage(CamelModel):
    type: Literal["user"] = "user"
    id: str
    text: str
    timestamp: datetime
    is_editing: bool = False

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class BotMessage(CamelModel):
    type: Literal["bot"] = "bot"
    id: str
    response: RegQAnswer
    suggestions: Optional[List[str]] = None
    timestamp: datetime
    is_editing: bool = False

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


ChatMessage = Annotated[Union[UserMessage, BotMessage], Field(discriminator="type")]


class ChatSession(CamelModel):
    id: str
    start_time: datetime
    messages: List[ChatMessage] = Field(default_factory=list)
    # None: never summarized. "" is a computed (empty) summary.
    summary: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def start_time_as_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


_history_adapter = TypeAdapter(Dict[str, ChatSession])


class KeyValueStorage:
    """String key-value store holding serialized blobs."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class InMemoryStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStorage(KeyValueStorage):
    """All keys in one JSON object on disk, rewritten atomically on each change."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Storage file %s is unreadable, starting empty: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self._path) or "."
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self._path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())


class ChatHistoryStore:
    """
    Chat sessions kept as one serialized blob under a single storage key.

    Every operation is a read-modify-write of the whole blob. Writers in other
    processes are not coordinated, so the last write wins.
    """

    def __init__(self, storage: KeyValueStorage, key: str = CHAT_HISTORY_KEY) -> None:
        self._storage = storage
        self._key = key

    def _read(self) -> Dict[str, ChatSession]:
        raw = self._storage.get(self._key)
        if not raw:
            return {}
        try:
            return _history_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("Error reading chat history, clearing corrupted data: %s", e)
            self._storage.delete(self._key)
            return {}

    def _write(self, history: Dict[str, ChatSession]) -> None:
        payload = _history_adapter.dump_json(history, by_alias=True, exclude_none=True)
        self._storage.set(self._key, payload.decode("utf-8"))

    def save_chat_message(
        self,
        session_id: str,
        message: Union[UserMessage, BotMessage],
        session_start_time: Optional[datetime] = None,
    ) -> ChatSession:
        return self.save_chat_turn(session_id, [message], session_start_time=session_start_time)

    def save_chat_turn(
        self,
        session_id: str,
        messages: Sequence[Union[UserMessage, BotMessage]],
        session_start_time: Optional[datetime] = None,
    ) -> ChatSession:
        """Append messages to a session in a single write, creating the session if needed."""
        history = self._read()
        session = history.get(session_id)
        if session is None:
            session = ChatSession(id=session_id, start_time=session_start_time or utcnow())
        session.messages.extend(messages)
        history[session_id] = session
        self._write(history)
        return session

    def update_session_summary(self, session_id: str, summary: str) -> None:
        history = self._read()
        if session_id in history:
            history[session_id].summary = summary
            self._write(history)

    def replace_bot_response(self, session_id: str, message_id: str, response: RegQAnswer) -> BotMessage:
        history = self._read()
        session = history.get(session_id)
        if session is None:
            raise KeyError(session_id)
        for index, msg in enumerate(session.messages):
            if msg.id == message_id and isinstance(msg, BotMessage):
                updated = msg.model_copy(
                    update={"response": response, "timestamp": utcnow(), "is_editing": False}
                )
                session.messages[index] = updated
                self._write(history)
                return updated
        raise KeyError(message_id)

    def get_all_sessions(self) -> List[ChatSession]:
        return sorted(self._read().values(), key=lambda s: s.start_time, reverse=True)

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self._read().get(session_id)

    def delete_session(self, session_id: str) -> None:
        history = self._read()
        if session_id in history:
            del history[session_id]
            self._write(history)

    def clear_history(self) -> None:
        self._storage.delete(self._key)
