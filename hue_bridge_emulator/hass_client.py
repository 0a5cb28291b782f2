"""Home Assistant REST client used as the hub capability."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import ClientError, ClientSession, ClientTimeout

from .const import HASS_REQUEST_TIMEOUT

_LOGGER = logging.getLogger(__name__)


class HassError(Exception):
    """Base error for hub access."""


class HassNotConfiguredError(HassError):
    """Hub URL or token missing."""


class HassAuthError(HassError):
    """Token rejected (401/403)."""


class HassApiError(HassError):
    """Unexpected HTTP status from the hub."""


class HassConnectionError(HassError):
    """Timeouts and connection issues."""


class HassClient:
    """Minimal async client for the Home Assistant REST API."""

    def __init__(
        self,
        session: ClientSession,
        url: str = "",
        token: str = "",
        timeout: float = HASS_REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._timeout = ClientTimeout(total=timeout)
        self._url = ""
        self._token = ""
        self.configure(url, token)

    def configure(self, url: str, token: str) -> None:
        """Point the client at a (possibly new) hub."""
        self._url = (url or "").rstrip("/")
        self._token = token or ""
        _LOGGER.debug("Hub client configured for %s", self._url or "<unset>")

    @property
    def is_configured(self) -> bool:
        return bool(self._url and self._token)

    @property
    def url(self) -> str:
        return self._url

    async def async_get_states(self) -> list[dict[str, Any]]:
        """Return the raw state objects of every hub entity."""
        data = await self._request("GET", "/api/states")
        if not isinstance(data, list):
            raise HassApiError("Unexpected response from /api/states")
        return [state for state in data if isinstance(state, dict)]

    async def async_get_entities(self) -> list[dict[str, str]]:
        """Return ``entity_id`` / ``friendly_name`` pairs for every entity."""
        entities = []
        for state in await self.async_get_states():
            entity_id = state.get("entity_id")
            if not entity_id:
                continue
            attributes = state.get("attributes") or {}
            entities.append(
                {
                    "entity_id": entity_id,
                    "friendly_name": attributes.get("friendly_name") or entity_id,
                }
            )
        return entities

    async def async_call_service(self, service: str, data: dict[str, Any]) -> None:
        """Invoke ``<domain>.<service>`` with ``data`` as payload."""
        domain, _, name = service.partition(".")
        if not domain or not name:
            raise HassApiError(f"Invalid service name {service!r}")
        _LOGGER.debug("Calling %s with %s", service, data)
        await self._request("POST", f"/api/services/{domain}/{name}", json=data)

    async def _request(
        self, method: str, path: str, json: dict[str, Any] | None = None
    ) -> Any:
        if not self.is_configured:
            raise HassNotConfiguredError("Home Assistant not configured")

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }
        try:
            async with self._session.request(
                method,
                f"{self._url}{path}",
                headers=headers,
                json=json,
                timeout=self._timeout,
            ) as resp:
                if resp.status in (401, 403):
                    raise HassAuthError("Home Assistant rejected the access token")
                if resp.status >= 400:
                    raise HassApiError(f"HA API error: {resp.status}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError as err:
            raise HassConnectionError(f"Timeout talking to {self._url}") from err
        except ClientError as err:
            raise HassConnectionError(f"Error talking to {self._url}: {err}") from err
        except ValueError as err:
            raise HassApiError(f"Invalid JSON from {self._url}{path}") from err
