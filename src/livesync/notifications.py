"""
Notification Dispatcher - capped, most-recent-first alert log.

The log survives restarts through a NotificationStorage (a JSON file for the
watch agent). A stored value that cannot be parsed is treated as an empty
log, and storage failures are logged rather than raised.
"""
from __future__ import annotations

import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .records import ChangeEvent, Collection

logger = logging.getLogger(__name__)

NotificationType = Literal["fire", "security", "system"]
NotificationSeverity = Literal["low", "medium", "high", "critical"]

MAX_HISTORY = 50


class NotificationIn(BaseModel):
    type: NotificationType
    title: str
    message: str
    severity: Optional[NotificationSeverity] = None


class Notification(NotificationIn):
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime


_HISTORY = TypeAdapter(list[Notification])


class NotificationStorage(ABC):
    """Durable key/value slot holding the serialized log."""

    @abstractmethod
    def load(self) -> Optional[str]:
        ...

    @abstractmethod
    def save(self, value: str) -> None:
        ...

    @abstractmethod
    def remove(self) -> None:
        ...


class MemoryStorage(NotificationStorage):
    def __init__(self, value: Optional[str] = None) -> None:
        self.value = value

    def load(self) -> Optional[str]:
        return self.value

    def save(self, value: str) -> None:
        self.value = value

    def remove(self) -> None:
        self.value = None


class JsonFileStorage(NotificationStorage):
    """Keeps the log in a JSON file; writes go through a temp file + replace."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def save(self, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)


class NotificationDispatcher:
    """
    In-memory alert log, persisted on every mutation.

    Args:
        storage: Where the log is persisted (default: in memory only)
        max_entries: Log cap; the oldest entries are dropped first
    """

    def __init__(self, storage: Optional[NotificationStorage] = None, *, max_entries: int = MAX_HISTORY) -> None:
        self._storage = storage or MemoryStorage()
        self._max_entries = max_entries
        self._history: tuple[Notification, ...] = self._rehydrate()

    @property
    def history(self) -> tuple[Notification, ...]:
        return self._history

    def __len__(self) -> int:
        return len(self._history)

    def record(self, entry: Union[NotificationIn, dict[str, Any]]) -> Notification:
        """
        Prepend an entry, stamping it with a fresh id and the current time.

        Raises ValidationError if the entry itself is malformed.
        """
        try:
            data = NotificationIn.model_validate(entry)
        except PydanticValidationError as e:
            raise ValidationError(f"Malformed notification: {e}") from e

        notification = Notification(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            **data.model_dump(),
        )
        self._history = ((notification,) + self._history)[: self._max_entries]
        self._persist()
        return notification

    def clear(self) -> None:
        self._history = ()
        try:
            self._storage.remove()
        except OSError as e:
            logger.error("Failed to clear stored notification history: %s", e)

    def clear_by_type(self, type_: str) -> None:
        """Drop every entry of one type, keeping the others in order."""
        kept = tuple(n for n in self._history if n.type != type_)
        if len(kept) == len(self._history):
            return
        self._history = kept
        self._persist()

    def _rehydrate(self) -> tuple[Notification, ...]:
        try:
            raw = self._storage.load()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read saved notification history: %s", e)
            return ()
        if not raw:
            return ()

        try:
            history = _HISTORY.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("Failed to parse saved notification history; starting empty: %s", e)
            return ()
        return tuple(history[: self._max_entries])

    def _persist(self) -> None:
        payload = _HISTORY.dump_json(list(self._history)).decode("utf-8")
        try:
            self._storage.save(payload)
        except OSError as e:
            logger.error("Failed to persist notification history: %s", e)


_LABELS: dict[Collection, tuple[str, NotificationType]] = {
    Collection.FIRE_ZONES: ("Fire Zone", "fire"),
    Collection.SECURITY_POINTS: ("Security Point", "security"),
    Collection.TEAM_MEMBERS: ("Team Member", "system"),
}


def describe_change(event: ChangeEvent) -> Optional[NotificationIn]:
    """
    Turn a change event into the alert an operator should see, if any.

    Team member updates are frequent (status, location) and produce nothing.
    """
    label, type_ = _LABELS[event.collection]

    if event.operation == "delete":
        return NotificationIn(
            type=type_,
            title=f"{label} Removed",
            message=f"A {label.lower()} has been removed",
        )

    if event.operation == "update" and event.collection is Collection.TEAM_MEMBERS:
        return None

    severity = None
    if event.collection is Collection.FIRE_ZONES:
        severity = event.row.severity.lower()

    if event.operation == "insert":
        title = f"New {label}"
        message = f"{event.row.name} has been added"
    else:
        title = f"{label} Updated"
        message = f"{event.row.name} has been updated"
    return NotificationIn(type=type_, title=title, message=message, severity=severity)


def describe_status(collection: Collection, connected: bool, retry_count: int, error: Optional[str]) -> Optional[NotificationIn]:
    """
    Alert for a change-feed status transition: a restored connection, or an
    outage that has lasted several attempts.
    """
    name = collection.value.replace("_", " ")
    if connected:
        return NotificationIn(type="system", title="Sync restored", message=f"Live updates for {name} resumed")
    if retry_count >= 3:
        return NotificationIn(
            type="system",
            title=f"Realtime Issue: {name.title()}",
            message=f"Persistent connection problem with '{collection.value}' updates. Last error: {error}.",
            severity="high",
        )
    return None
