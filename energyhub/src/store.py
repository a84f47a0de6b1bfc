"""
Device store client for the realtime store's REST and streaming interfaces.

The store exposes every node as ``{base_url}/{path}.json``:

- ``GET`` / ``PUT`` / ``PATCH`` / ``DELETE`` for CRUD. ``PATCH`` accepts
  multi-path keys such as ``"toggle/state"``.
- ``GET`` with ``Accept: text/event-stream`` for the change feed. Each
  Server-Sent Event carries ``{"path": "/...", "data": ...}``; ``put``
  replaces the node at ``path``, ``patch`` merges children into it, and
  ``keep-alive`` carries nothing.

Errors are classified for the caller:

- Timeout, connection failure, or HTTP 5xx -> TransientFetchError.
- HTTP 4xx -> WriteRejectedError (permissions, validation).

CHANGELOG:
- 2026-10-17: Add SSE change feed and pure event application (STORY-012)
- 2026-10-17: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from energyhub.src.errors import MalformedDataError, TransientFetchError, WriteRejectedError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0

_TERMINAL_EVENTS = frozenset({"cancel", "auth_revoked"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def store_url(base_url: str, path: str, auth_token: str = "") -> str:
    """Build the REST URL of a store node.

    Args:
        base_url: Store REST root without trailing slash.
        path: Node path, e.g. ``"devices/abc"``. Empty for the root.
        auth_token: Optional auth token appended as ``?auth=``.

    Returns:
        str: e.g. ``https://home.example.com/devices/abc.json?auth=tok``.
    """
    path = path.strip("/")
    url = f"{base_url}/{path}.json" if path else f"{base_url}/.json"
    if auth_token:
        url += "?" + urlencode({"auth": auth_token})
    return url


@dataclass(frozen=True)
class StoreEvent:
    """One change-feed event.

    Attributes:
        event: Event name: ``put`` or ``patch``.
        path: Node path relative to the listened node (``"/"`` for itself).
        data: New value (``put``) or children to merge (``patch``).
    """

    event: str
    path: str
    data: Any


def _set_in(node: Any, parts: list[str], value: Any) -> Any:
    """Return a copy of *node* with *value* stored at *parts*.

    Only the dicts along the path are copied. A None value deletes the key,
    and parents left empty are removed, matching the store's semantics.
    """
    if not parts:
        return value
    head, rest = parts[0], parts[1:]
    current = dict(node) if isinstance(node, dict) else {}
    child = _set_in(current.get(head), rest, value)
    if child is None:
        current.pop(head, None)
    else:
        current[head] = child
    return current or None


def apply_store_event(tree: Any, event: StoreEvent) -> Any:
    """Apply a change-feed event to a raw tree without mutating it.

    Args:
        tree: Current raw value of the listened node (may be None).
        event: A ``put`` or ``patch`` event.

    Returns:
        The new raw value of the listened node.

    Raises:
        MalformedDataError: For an unknown event type or a ``patch`` whose
            data is not an object.
    """
    parts = [part for part in event.path.split("/") if part]
    if event.event == "put":
        return _set_in(tree, parts, event.data)
    if event.event == "patch":
        if not isinstance(event.data, dict):
            raise MalformedDataError(f"patch data at {event.path} is not an object")
        for key, value in event.data.items():
            sub_parts = [part for part in str(key).split("/") if part]
            tree = _set_in(tree, parts + sub_parts, value)
        return tree
    raise MalformedDataError(f"Unknown store event '{event.event}'")


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[StoreEvent]:
    """Decode Server-Sent Event lines into StoreEvents.

    ``keep-alive`` events are skipped. ``cancel`` and ``auth_revoked`` end
    the stream with TransientFetchError so the listener reconnects.

    Args:
        lines: Decoded text lines of the event stream.

    Yields:
        StoreEvent: Each ``put``/``patch`` event in arrival order.
    """
    event_name = ""
    data_lines: list[str] = []
    async for line in lines:
        if line.startswith(":"):
            continue
        if line:
            field, _, value = line.partition(":")
            value = value.removeprefix(" ")
            if field == "event":
                event_name = value
            elif field == "data":
                data_lines.append(value)
            continue

        # Blank line dispatches the pending event.
        name, raw = event_name, "\n".join(data_lines)
        event_name, data_lines = "", []
        if not name or name == "keep-alive":
            continue
        if name in _TERMINAL_EVENTS:
            raise TransientFetchError(f"Change feed closed by store: {name} {raw}")
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("Skipping %s event with undecodable data", name)
            continue
        if not isinstance(payload, dict) or "path" not in payload:
            logger.warning("Skipping %s event without a path", name)
            continue
        yield StoreEvent(event=name, path=payload["path"], data=payload.get("data"))


# ---------------------------------------------------------------------------
# Store client
# ---------------------------------------------------------------------------


class DeviceStore:
    """CRUD and change-feed access to the realtime store.

    Args:
        client: Shared async HTTP client. The store never closes it.
        base_url: Store REST root, e.g. ``https://home.example.com``.
        auth_token: Optional auth token appended as ``?auth=``.
        timeout_s: Per-request timeout in seconds. The change feed uses it
            for connecting only; reads on the stream never time out.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        *,
        auth_token: str = "",
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout_s = timeout_s

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, path: str) -> Any:
        """Read a node. Returns None when it does not exist."""
        response = await self._request("GET", path)
        return response.json()

    async def put(self, path: str, data: Any) -> None:
        """Replace a node."""
        await self._request("PUT", path, data)

    async def patch(self, path: str, data: dict[str, Any]) -> None:
        """Merge children (multi-path keys allowed) into a node."""
        await self._request("PATCH", path, data)

    async def delete(self, path: str) -> None:
        """Delete a node. Deleting a missing node succeeds."""
        await self._request("DELETE", path)

    async def listen(self, path: str) -> AsyncIterator[StoreEvent]:
        """Stream change events for a node until the connection ends.

        The first event is a ``put`` at ``"/"`` carrying the node's full
        current value.

        Raises:
            TransientFetchError: On connection failure, non-200 status, or
                a store-side ``cancel``/``auth_revoked``.
        """
        url = store_url(self._base_url, path, self._auth_token)
        timeout = httpx.Timeout(self._timeout_s, read=None)
        try:
            async with self._client.stream(
                "GET",
                url,
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
                follow_redirects=True,
            ) as response:
                if response.status_code != 200:
                    raise TransientFetchError(
                        f"Change feed for /{path} failed: HTTP {response.status_code}"
                    )
                logger.info("Change feed connected for /%s", path)
                async for event in parse_sse(response.aiter_lines()):
                    yield event
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Change feed for /{path} dropped: {exc}") from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, data: Any = None) -> httpx.Response:
        url = store_url(self._base_url, path, self._auth_token)
        kwargs: dict[str, Any] = {"timeout": httpx.Timeout(self._timeout_s)}
        if method in ("PUT", "PATCH"):
            kwargs["json"] = data
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"{method} /{path} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"{method} /{path} failed: {exc}") from exc

        if 400 <= response.status_code < 500:
            raise WriteRejectedError(
                f"{method} /{path} rejected: HTTP {response.status_code} {response.text[:200]}"
            )
        if response.status_code >= 300:
            raise TransientFetchError(f"{method} /{path} failed: HTTP {response.status_code}")
        return response
