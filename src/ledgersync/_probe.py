"""Lightweight same-origin connectivity probe."""

from __future__ import annotations

import logging
from typing import Protocol

import aiohttp

from ledgersync._constants import USER_AGENT

_logger = logging.getLogger(__name__)


class ConnectivityProbe(Protocol):
    async def check(self) -> bool:
        ...


class HttpConnectivityProbe:
    """``HEAD`` request against a static asset of the application origin.

    Any HTTP answer, whatever its status, proves the network path is up;
    only transport failures count as lost connectivity.
    """

    def __init__(self, url: str, http_session: aiohttp.ClientSession, *, timeout: float = 5.0) -> None:
        self._url = url
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def url(self) -> str:
        return self._url

    async def check(self) -> bool:
        headers = {"cache-control": "no-cache", "user-agent": USER_AGENT}
        try:
            async with self._http.head(self._url, headers=headers, timeout=self._timeout) as resp:
                _logger.debug("Connectivity probe %s -> HTTP %s", self._url, resp.status)
                return True
        except (aiohttp.ClientError, TimeoutError):
            _logger.debug("Connectivity probe %s failed", self._url, exc_info=True)
            return False
