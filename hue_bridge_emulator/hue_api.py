"""Hue REST API endpoints for the Hue bridge emulator.

Implements the Philips Hue bridge v1 API subset that Alexa (and other Hue
clients) use to discover and control the devices cached by
HueDeviceManager, plus a small JSON admin API for the configuration.
"""
from __future__ import annotations

from functools import lru_cache
import hashlib
from http import HTTPStatus
import logging
import math
from typing import Any

from aiohttp import web

from .config_schema import ConfigError, validate_config
from .const import (
    HUE_API_STATE_BRI_MAX,
    HUE_API_STATE_BRI_MIN,
    HUE_API_USERNAME,
    HUE_API_VERSION,
    HUE_BRIDGE_MAC,
    HUE_BRIDGE_NAME,
    HUE_SERIAL_NUMBER,
    HUE_SW_VERSION,
)
from .hass_client import HassError
from .hue_device import Config, Device
from .hue_device_manager import DeviceNotFoundError, HueDeviceManager
from .translator import get_translator
from .upnp import DescriptionXmlView
from .view import BridgeView

_LOGGER = logging.getLogger(__name__)

# Hue API state key names (as they appear in JSON requests/responses)
HUE_API_STATE_ON = "on"
HUE_API_STATE_BRI = "bri"
HUE_API_STATE_REACHABLE = "reachable"

KEY_DEVICE_MANAGER = web.AppKey("device_manager", HueDeviceManager)
KEY_ADVERTISE_IP = web.AppKey("advertise_ip", str)
KEY_ADVERTISE_PORT = web.AppKey("advertise_port", int)


def _hue_api_error(
    error_type: int, address: str, description: str
) -> list[dict[str, Any]]:
    """Build a Hue API error response array.

    Error types defined by the Hue API:
      1 = unauthorized user
      2 = body contains invalid JSON
      3 = resource not available
      6 = parameter not available
      7 = invalid value
    """
    return [{"error": {"type": error_type, "address": address, "description": description}}]


def _light_not_found(view: BridgeView, light_id: str) -> web.Response:
    _LOGGER.debug("Unknown device number: %s", light_id)
    return view.json(
        _hue_api_error(
            3,
            f"/lights/{light_id}",
            f"resource, /lights/{light_id}, not available",
        ),
        status_code=HTTPStatus.NOT_FOUND,
    )


def _hub_unavailable(view: BridgeView, err: HassError) -> web.Response:
    _LOGGER.error("Home Assistant unavailable: %s", err)
    return view.json_message(str(err), HTTPStatus.INTERNAL_SERVER_ERROR)


# ---------------------------------------------------------------------------
# Hue API views
# ---------------------------------------------------------------------------


class HueUsernameView(BridgeView):
    """Handle POST /api: fake username/pairing creation."""

    url = "/api"
    name = "hue:api:create_username"
    extra_urls = ["/api/"]

    async def post(self, request: web.Request) -> web.Response:
        """Handle a POST request; pairing always succeeds."""
        try:
            data = await request.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and "devicetype" in data:
            _LOGGER.info("Pairing request from %s (%s)", request.remote, data["devicetype"])

        return self.json([{"success": {"username": HUE_API_USERNAME}}])


class HueConfigView(BridgeView):
    """Handle GET /api/{username}/config: bridge configuration."""

    url = "/api/{username}/config"
    extra_urls = ["/api/config"]
    name = "hue:username:config"

    async def get(self, request: web.Request, username: str = "") -> web.Response:
        """Handle a GET request."""
        return self.json(_create_config_model(request))


class HueFullStateView(BridgeView):
    """Handle GET /api/{username}: full bridge state."""

    url = "/api/{username}"
    name = "hue:username:state"

    async def get(self, request: web.Request, username: str) -> web.Response:
        """Handle a GET request."""
        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            devices = await device_manager.async_get_devices()
        except HassError as err:
            return _hub_unavailable(self, err)

        return self.json(
            {
                "lights": _create_list_of_devices(devices),
                "groups": {},
                "config": _create_config_model(request),
            }
        )


class HueAllLightsStateView(BridgeView):
    """Handle GET /api/{username}/lights: list all devices."""

    url = "/api/{username}/lights"
    name = "hue:lights:state"

    async def get(self, request: web.Request, username: str) -> web.Response:
        """Handle a GET request."""
        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            devices = await device_manager.async_get_devices()
        except HassError as err:
            return _hub_unavailable(self, err)

        return self.json(_create_list_of_devices(devices))


class HueOneLightStateView(BridgeView):
    """Handle GET /api/{username}/lights/{light_id}: single device state."""

    url = "/api/{username}/lights/{light_id}"
    name = "hue:light:state"

    async def get(
        self, request: web.Request, username: str, light_id: str
    ) -> web.Response:
        """Handle a GET request."""
        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            device = await device_manager.async_get_device(light_id)
        except DeviceNotFoundError:
            return _light_not_found(self, light_id)
        except HassError as err:
            return _hub_unavailable(self, err)

        return self.json(device_to_json(device))


class HueOneLightChangeView(BridgeView):
    """Handle PUT /api/{username}/lights/{light_id}/state: control a device."""

    url = "/api/{username}/lights/{light_id}/state"
    name = "hue:light:change"

    async def put(
        self, request: web.Request, username: str, light_id: str
    ) -> web.Response:
        """Process a request to set the state of an individual light."""
        try:
            request_json = await request.json()
        except ValueError:
            _LOGGER.error("Received invalid json")
            return self.json_message("Invalid JSON", HTTPStatus.BAD_REQUEST)

        if not isinstance(request_json, dict):
            _LOGGER.error("Unable to parse data: %s", request_json)
            return self.json_message("Bad request", HTTPStatus.BAD_REQUEST)

        parsed: dict[str, Any] = {}
        if HUE_API_STATE_ON in request_json:
            if not isinstance(request_json[HUE_API_STATE_ON], bool):
                _LOGGER.error("Unable to parse data: %s", request_json)
                return self.json_message("Bad request", HTTPStatus.BAD_REQUEST)
            parsed[HUE_API_STATE_ON] = request_json[HUE_API_STATE_ON]

        if HUE_API_STATE_BRI in request_json:
            value = request_json[HUE_API_STATE_BRI]
            try:
                if isinstance(value, bool):
                    raise TypeError("bri must be a number")
                if isinstance(value, float) and not math.isfinite(value):
                    raise ValueError("bri must be finite")
                parsed[HUE_API_STATE_BRI] = max(
                    HUE_API_STATE_BRI_MIN, min(int(value), HUE_API_STATE_BRI_MAX)
                )
            except (OverflowError, TypeError, ValueError):
                _LOGGER.error("Unable to parse data: %s", request_json)
                return self.json_message("Bad request", HTTPStatus.BAD_REQUEST)

        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            await device_manager.async_set_state(light_id, parsed)
        except DeviceNotFoundError:
            return _light_not_found(self, light_id)
        except HassError as err:
            return _hub_unavailable(self, err)

        return self.json(
            [
                _create_hue_success_response(light_id, key, value)
                for key, value in parsed.items()
            ]
        )


# ---------------------------------------------------------------------------
# Admin views
# ---------------------------------------------------------------------------


class AdminIndexView(BridgeView):
    """Handle GET /admin: the UPnP presentation URL, listing admin resources."""

    url = "/admin"
    extra_urls = ["/admin/"]
    name = "admin:index"

    async def get(self, request: web.Request) -> web.Response:
        """Handle a GET request."""
        return self.json(
            {
                "name": HUE_BRIDGE_NAME,
                "config": AdminConfigView.url,
                "entities": AdminEntitiesView.url,
            }
        )


class AdminConfigView(BridgeView):
    """Handle GET/POST /admin/config: read and replace the configuration."""

    url = "/admin/config"
    name = "admin:config"

    async def get(self, request: web.Request) -> web.Response:
        """Return the stored configuration."""
        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            config = await device_manager.async_get_config()
        except ConfigError as err:
            return self.json_message(str(err), HTTPStatus.INTERNAL_SERVER_ERROR)
        return self.json(config.to_dict())

    async def post(self, request: web.Request) -> web.Response:
        """Validate, save and apply a new configuration."""
        try:
            data = await request.json()
        except ValueError:
            return self.json_message("Invalid JSON", HTTPStatus.BAD_REQUEST)

        try:
            config = Config.from_dict(validate_config(data))
        except ConfigError as err:
            return self.json_message(str(err), HTTPStatus.BAD_REQUEST)

        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            await device_manager.async_update_config(config)
        except HassError as err:
            return _hub_unavailable(self, err)

        return self.json(config.to_dict())


class AdminEntitiesView(BridgeView):
    """Handle GET /admin/entities: hub entities available for binding."""

    url = "/admin/entities"
    name = "admin:entities"

    async def get(self, request: web.Request) -> web.Response:
        """Handle a GET request."""
        device_manager = request.app[KEY_DEVICE_MANAGER]
        try:
            entities = await device_manager.async_get_entities()
        except HassError as err:
            return _hub_unavailable(self, err)
        return self.json(entities)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def device_to_json(device: Device) -> dict[str, Any]:
    """Convert a cached Device to its Hue light resource."""
    metadata = get_translator(device.device_type).metadata
    return {
        "state": {
            HUE_API_STATE_ON: device.state.on,
            HUE_API_STATE_BRI: device.state.bri,
            HUE_API_STATE_REACHABLE: device.state.reachable,
            "mode": "homeautomation",
        },
        "name": device.name,
        "uniqueid": _entity_unique_id(device.hue_id),
        "manufacturername": metadata.manufacturername,
        "modelid": metadata.modelid,
        "type": metadata.type,
        "swversion": "123",
    }


@lru_cache(maxsize=1024)
def _entity_unique_id(hue_id: str) -> str:
    """Generate a Hue-format unique ID from a device's hue_id."""
    unique_id = hashlib.md5(f"hue_bridge_emulator_{hue_id}".encode()).hexdigest()
    return (
        f"00:{unique_id[0:2]}:{unique_id[2:4]}:"
        f"{unique_id[4:6]}:{unique_id[6:8]}:{unique_id[8:10]}:"
        f"{unique_id[10:12]}:{unique_id[12:14]}-{unique_id[14:16]}"
    )


def _create_hue_success_response(
    light_id: str, attr: str, value: Any,
) -> dict[str, Any]:
    """Create a success response for an attribute set on a light."""
    success_key = f"/lights/{light_id}/state/{attr}"
    return {"success": {success_key: value}}


def _create_config_model(request: web.Request) -> dict[str, Any]:
    """Create the bridge config response."""
    advertise_ip = request.app[KEY_ADVERTISE_IP]
    advertise_port = request.app[KEY_ADVERTISE_PORT]
    return {
        "name": HUE_BRIDGE_NAME,
        "mac": HUE_BRIDGE_MAC,
        "bridgeid": HUE_SERIAL_NUMBER,
        "modelid": "BSB002",
        "swversion": HUE_SW_VERSION,
        "apiversion": HUE_API_VERSION,
        "whitelist": {HUE_API_USERNAME: {"name": HUE_BRIDGE_NAME}},
        "ipaddress": f"{advertise_ip}:{advertise_port}",
        "linkbutton": True,
    }


def _create_list_of_devices(devices: list[Device]) -> dict[str, Any]:
    """Create a dict of all cached devices as Hue light resources."""
    return {device.hue_id: device_to_json(device) for device in devices}


def register_views(app: web.Application, advertise_ip: str, advertise_port: int) -> None:
    """Register every bridge and admin view on ``app``."""
    for view in (
        DescriptionXmlView(advertise_ip, advertise_port),
        HueUsernameView(),
        HueConfigView(),
        HueAllLightsStateView(),
        HueOneLightStateView(),
        HueOneLightChangeView(),
        HueFullStateView(),
        AdminIndexView(),
        AdminConfigView(),
        AdminEntitiesView(),
    ):
        view.register(app, app.router)
