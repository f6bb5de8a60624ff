"""Remote data gateway: the only path to the backend's source of truth."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from ledgersync._constants import REST_PATH_PREFIX, USER_AGENT
from ledgersync.exceptions import GatewayError

_logger = logging.getLogger(__name__)


class RemoteGateway(Protocol):
    """Structural gateway interface used by the cache store and health monitor.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestGateway`) concrete.
    """

    async def fetch_all(self, table: str) -> list[dict[str, Any]]:
        ...

    async def ping(self) -> None:
        ...


class RestGateway:
    """Read-only REST gateway for a PostgREST-style backend.

    Collections are read with ``GET {base_url}/rest/v1/<table>?select=*``.
    ``ping`` performs the cheapest possible read (one row of ``ping_table``)
    to tell a reachable backend from a degraded one.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        api_key: str | None = None,
        ping_table: str = "users",
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._api_key = api_key
        self._ping_table = ping_table
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _get_json(self, table: str, params: dict[str, str]) -> Any:
        url = f"{self._base_url}{REST_PATH_PREFIX}/{table}"
        _logger.debug("GET %s params=%s", url, params)

        request_kwargs: dict[str, Any] = {"params": params, "headers": self._headers()}
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout

        try:
            async with self._http.get(url, **request_kwargs) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise GatewayError(
                        f"HTTP {resp.status} from {table}: {text[:200]}",
                        status_code=resp.status,
                        table=table,
                    )
        except GatewayError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise GatewayError(f"Request for {table} failed: {exc}", table=table) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GatewayError(f"Invalid JSON from {table}: {text[:200]}", table=table) from exc

    async def fetch_all(self, table: str) -> list[dict[str, Any]]:
        body = await self._get_json(table, {"select": "*"})
        if not isinstance(body, list):
            raise GatewayError(f"Expected a JSON array from {table}", table=table)
        return [row for row in body if isinstance(row, dict)]

    async def ping(self) -> None:
        await self._get_json(self._ping_table, {"select": "id", "limit": "1"})
