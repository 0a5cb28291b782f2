"""Class-based aiohttp views for the bridge HTTP surface."""
from __future__ import annotations

from http import HTTPStatus
import json
import logging
from typing import Any

from aiohttp import web

_LOGGER = logging.getLogger(__name__)

_METHODS = ("get", "post", "put", "delete")


class BridgeView:
    """Base view: subclasses define ``url`` and one coroutine per HTTP method."""

    url: str
    name: str
    extra_urls: list[str] = []

    @staticmethod
    def json(
        result: Any,
        status_code: HTTPStatus | int = HTTPStatus.OK,
        headers: dict[str, str] | None = None,
    ) -> web.Response:
        """Return a JSON response."""
        return web.Response(
            body=json.dumps(result, separators=(",", ":")).encode(),
            content_type="application/json",
            status=int(status_code),
            headers=headers,
        )

    def json_message(
        self,
        message: str,
        status_code: HTTPStatus | int = HTTPStatus.OK,
    ) -> web.Response:
        """Return a JSON message response."""
        return self.json({"message": message}, status_code)

    def register(self, app: web.Application, router: web.UrlDispatcher) -> None:
        """Register the view's handlers on ``router``."""
        urls = [self.url, *self.extra_urls]
        for method in _METHODS:
            if (handler := getattr(self, method, None)) is None:
                continue
            for url in urls:
                router.add_route(method.upper(), url, _request_handler(self, handler))
        _LOGGER.debug("Registered %s on %s", self.name, ", ".join(urls))


def _request_handler(view: BridgeView, handler: Any) -> Any:
    """Wrap a view method as an aiohttp handler with URL params as kwargs."""

    async def handle(request: web.Request) -> web.StreamResponse:
        _LOGGER.debug(
            "Serving %s %s to %s (%s)", request.method, request.path, request.remote, view.name
        )
        return await handler(request, **request.match_info)

    return handle
