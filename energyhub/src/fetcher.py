"""
Raw telemetry fetcher for the realtime store's REST interface.

Retrieves the entire raw state tree in a single ``GET /.json`` call; the
store offers no range queries, so every refresh reads the full history. The
result is returned as an untrusted dict: interpreting channel values is the
merger's job.

Errors are classified rather than swallowed, because the caller (the
aggregate cache) decides whether to serve a fallback:

- Timeout, connection failure, or non-200 status -> TransientFetchError.
- Body that is not a JSON object -> MalformedDataError.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from energyhub.src.errors import MalformedDataError, TransientFetchError
from energyhub.src.store import store_url

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0


class RawSeriesFetcher:
    """Reads the full raw state tree from the realtime store.

    Args:
        client: Shared async HTTP client. The fetcher never closes it.
        base_url: Store REST root, e.g. ``https://home.example.com``.
        auth_token: Optional auth token appended as ``?auth=``.
        timeout_s: Per-request timeout in seconds.

    Usage::

        async with httpx.AsyncClient() as client:
            fetcher = RawSeriesFetcher(client, "https://home.example.com")
            raw = await fetcher.fetch()
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
        self._timeout = httpx.Timeout(timeout_s)

    async def fetch(self) -> dict[str, Any]:
        """Fetch the raw state tree.

        Returns:
            dict: The decoded tree. An empty store (JSON ``null``) yields
            an empty dict.

        Raises:
            TransientFetchError: On timeout, transport error, or non-200.
            MalformedDataError: If the body is not a JSON object.
        """
        url = store_url(self._base_url, "", self._auth_token)
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"Telemetry fetch timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Telemetry fetch failed: {exc}") from exc

        if response.status_code != 200:
            raise TransientFetchError(
                f"Telemetry fetch failed: HTTP {response.status_code} "
                f"{response.reason_phrase}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedDataError("Telemetry payload is not valid JSON") from exc

        if payload is None:
            logger.info("Telemetry store is empty")
            return {}
        if not isinstance(payload, dict):
            raise MalformedDataError(
                f"Telemetry payload must be a JSON object, got {type(payload).__name__}"
            )

        logger.debug("Fetched raw telemetry tree with top-level keys %s", sorted(payload))
        return payload
