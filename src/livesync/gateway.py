"""
Contracts the synchronizer consumes.

PersistenceGateway is the typed query surface over the backing store.
ChangeFeed hands out ChangeStreams: async iterators of raw change events that
raise TransportError when the underlying connection drops.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional, Sequence

from .records import ChangeEvent, Collection

Row = dict[str, Any]
Disposer = Callable[[], None]
ChangeCallback = Callable[[ChangeEvent], None]


class PersistenceGateway(ABC):
    """
    Typed queries against the store. All queries are async and may raise
    TransportError or AuthorizationError.
    """

    @abstractmethod
    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[Row]:
        """Return all rows, optionally filtered by equality and ordered ('-col' = descending)."""

    @abstractmethod
    async def fetch_one(self, collection: Collection, row_id: str) -> Row:
        """Return one row or raise NotFoundError."""

    @abstractmethod
    async def insert(self, collection: Collection, row: Mapping[str, Any]) -> Row:
        ...

    @abstractmethod
    async def update(self, collection: Collection, row_id: str, partial: Mapping[str, Any]) -> Row:
        ...

    @abstractmethod
    async def delete(self, collection: Collection, row_id: str) -> None:
        ...

    @abstractmethod
    def subscribe_to_changes(self, collection: Collection, callback: ChangeCallback) -> Disposer:
        """Invoke callback for every committed change; returns a disposer."""


class ChangeStream(ABC):
    """
    One live connection to a collection's change feed.

    Iterating yields raw events (ChangeEvent or its JSON mapping). Iteration
    raises TransportError when the connection is lost and stops cleanly after
    aclose().
    """

    def __aiter__(self) -> "ChangeStream":
        return self

    @abstractmethod
    async def __anext__(self) -> Any:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...


class ChangeFeed(ABC):
    @abstractmethod
    async def open(self, collection: Collection) -> ChangeStream:
        """Connect to the collection's feed; raise TransportError if unreachable."""
