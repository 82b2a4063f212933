"""
HTTP adapters for the FarmWatch server (httpx).

HttpIdentityProvider signs in over /api/auth and keeps the bearer token;
HttpGateway implements the PersistenceGateway on top of the REST routes.
Both share one httpx.AsyncClient.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Sequence

import httpx

from livesync.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from livesync.gateway import ChangeCallback, ChangeFeed, Disposer, PersistenceGateway, Row
from livesync.identity import Credentials, IdentityProvider, User
from livesync.records import ChangeEvent, Collection, parse_collection

logger = logging.getLogger(__name__)

# REST path for each collection.
PATHS: dict[Collection, str] = {
    Collection.FIRE_ZONES: "/api/fire-zones",
    Collection.SECURITY_POINTS: "/api/security-points",
    Collection.TEAM_MEMBERS: "/api/team-members",
}


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


def raise_for_status(response: httpx.Response, collection: str = "", row_id: str = "") -> None:
    """Translate an error response into the matching FarmWatchError."""
    code = response.status_code
    if code < 400:
        return
    detail = _detail(response)
    if code in (401, 403):
        raise AuthorizationError(detail)
    if code == 404:
        raise NotFoundError(collection or response.request.url.path, row_id)
    if code == 409:
        raise ConflictError(detail)
    if code in (400, 422):
        raise ValidationError(detail)
    raise TransportError(f"Server error {code}: {detail}")


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(f"{method} {url} failed: {e}") from e


def build_client(base_url: str, timeout: float = 10.0, **kwargs: Any) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, timeout=timeout, **kwargs)


class HttpIdentityProvider(IdentityProvider):
    def __init__(self, client: httpx.AsyncClient) -> None:
        super().__init__()
        self._client = client
        self._token: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    def auth_headers(self) -> dict[str, str]:
        if self._token is None:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def sign_in(self, credentials: Credentials) -> User:
        response = await send(self._client, "POST", "/api/auth/login", json=credentials.model_dump())
        raise_for_status(response)
        body = response.json()
        self._token = body["access_token"]
        user = User.model_validate(body["user"])
        self._set_user(user)
        logger.info("Signed in as %s (%s)", user.email, user.role)
        return user

    async def sign_out(self) -> None:
        if self._token is not None:
            try:
                response = await send(self._client, "POST", "/api/auth/logout", headers=self.auth_headers())
                raise_for_status(response)
            except (AuthorizationError, TransportError) as e:
                # The local session ends either way.
                logger.warning("Server-side sign-out failed: %s", e)
            self._token = None
        self._set_user(None)


def _sort(rows: list[Row], order_by: Sequence[str]) -> list[Row]:
    # Stable sorts applied last key first give a multi-key ordering.
    for key in reversed(order_by):
        name = key.lstrip("-")

        def sort_key(row: Row, name: str = name):
            value = row.get(name)
            if isinstance(value, str):
                value = value.lower()
            return (value is None, value)

        rows = sorted(rows, key=sort_key, reverse=key.startswith("-"))
    return rows


class HttpGateway(PersistenceGateway):
    """
    Args:
        client: Shared AsyncClient pointed at the server
        identity: Supplies the bearer token for every request
        feed: Change feed used by subscribe_to_changes (optional)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        identity: HttpIdentityProvider,
        feed: Optional[ChangeFeed] = None,
    ) -> None:
        self._client = client
        self._identity = identity
        self._feed = feed

    async def _request(self, method: str, url: str, collection: Collection, row_id: str = "", **kwargs: Any):
        response = await send(self._client, method, url, headers=self._identity.auth_headers(), **kwargs)
        raise_for_status(response, collection.value, row_id)
        return response

    async def fetch_all(
        self,
        collection: Collection,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[Row]:
        collection = parse_collection(collection)
        response = await self._request("GET", PATHS[collection], collection, params=dict(filters or {}))
        rows = response.json()[collection.value]
        if order_by:
            rows = _sort(rows, order_by)
        return rows

    async def fetch_one(self, collection: Collection, row_id: str) -> Row:
        collection = parse_collection(collection)
        response = await self._request("GET", f"{PATHS[collection]}/{row_id}", collection, row_id)
        return response.json()

    async def insert(self, collection: Collection, row: Mapping[str, Any]) -> Row:
        collection = parse_collection(collection)
        response = await self._request("POST", PATHS[collection], collection, json=dict(row))
        return response.json()

    async def update(self, collection: Collection, row_id: str, partial: Mapping[str, Any]) -> Row:
        collection = parse_collection(collection)
        response = await self._request(
            "PATCH", f"{PATHS[collection]}/{row_id}", collection, row_id, json=dict(partial)
        )
        return response.json()

    async def delete(self, collection: Collection, row_id: str) -> None:
        collection = parse_collection(collection)
        await self._request("DELETE", f"{PATHS[collection]}/{row_id}", collection, row_id)

    def subscribe_to_changes(self, collection: Collection, callback: ChangeCallback) -> Disposer:
        """
        Forward change events to callback until disposed. Needs a running event
        loop; a dropped connection ends the forwarding (the synchronizer is the
        component that reconnects).
        """
        if self._feed is None:
            raise RuntimeError("HttpGateway was created without a change feed")
        collection = parse_collection(collection)
        feed = self._feed

        async def forward() -> None:
            try:
                stream = await feed.open(collection)
            except TransportError as e:
                logger.warning("Could not open %s change feed: %s", collection.value, e)
                return
            try:
                async for raw in stream:
                    try:
                        callback(ChangeEvent.from_json(raw))
                    except ValidationError as e:
                        logger.warning("Dropping malformed %s change event: %s", collection.value, e)
            except TransportError as e:
                logger.warning("Change forwarding for %s stopped: %s", collection.value, e)
            finally:
                await stream.aclose()

        task = asyncio.get_running_loop().create_task(forward(), name=f"forward-{collection.value}")

        def dispose() -> None:
            task.cancel()

        return dispose
