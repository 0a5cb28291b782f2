"""Hue bridge emulator for Home Assistant.

Runs a standalone HTTP server + SSDP responder that emulates a Philips Hue
bridge, allowing Alexa (and other Hue clients) to discover and control
Home Assistant entities through a configured list of virtual devices.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging

from aiohttp import ClientSession, web

from .hass_client import HassClient, HassError
from .hue_api import (
    KEY_ADVERTISE_IP,
    KEY_ADVERTISE_PORT,
    KEY_DEVICE_MANAGER,
    register_views,
)
from .hue_device_manager import HueDeviceManager
from .settings import Settings
from .storage import ConfigStore
from .upnp import UPNPResponderProtocol, async_create_upnp_datagram_endpoint

_LOGGER = logging.getLogger(__name__)


@dataclass
class Bridge:
    """Everything a running bridge owns, torn down by async_stop."""

    settings: Settings
    session: ClientSession
    device_manager: HueDeviceManager
    runner: web.AppRunner
    protocol: UPNPResponderProtocol | None = None

    async def async_stop(self) -> None:
        """Stop the HTTP server, the SSDP responder and the device manager."""
        _LOGGER.info("Stopping Hue bridge emulator")
        if self.protocol:
            self.protocol.close()
        await self.runner.cleanup()
        await self.device_manager.async_stop()
        await self.session.close()


async def async_bootstrap_config(store: ConfigStore, settings: Settings) -> None:
    """Seed hub settings from the environment when none are stored."""
    config = await store.async_get()
    if config.hass_url and config.hass_token:
        return
    if not (settings.hass_url and settings.hass_token):
        _LOGGER.warning(
            "Home Assistant URL/token not set; configure them via /admin/config"
        )
        return

    _LOGGER.info("Using Home Assistant settings from the environment")
    config.hass_url = settings.hass_url
    config.hass_token = settings.hass_token
    if not config.local_ip:
        config.local_ip = settings.local_ip
    await store.async_save(config)


def create_app(
    device_manager: HueDeviceManager, advertise_ip: str, advertise_port: int
) -> web.Application:
    """Build the aiohttp application serving the Hue and admin APIs."""
    app = web.Application()
    app[KEY_DEVICE_MANAGER] = device_manager
    app[KEY_ADVERTISE_IP] = advertise_ip
    app[KEY_ADVERTISE_PORT] = advertise_port
    register_views(app, advertise_ip, advertise_port)
    return app


async def async_start_bridge(settings: Settings) -> Bridge:
    """Set up the device manager and start the HTTP server and SSDP responder."""
    _LOGGER.info("Setting up Hue bridge emulator")

    session = ClientSession()
    store = ConfigStore(settings.config_path)
    try:
        await async_bootstrap_config(store, settings)
        device_manager = HueDeviceManager(
            HassClient(session), store, refresh_interval=settings.refresh_interval
        )
        await device_manager.async_setup()
    except BaseException:
        await session.close()
        raise

    try:
        await device_manager.async_refresh()
    except HassError as err:
        _LOGGER.warning("Initial refresh failed, will retry: %s", err)

    app = create_app(device_manager, settings.advertise_ip, settings.advertise_port)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.local_ip, settings.listen_port)

    _LOGGER.info(
        "Starting Hue bridge emulator on %s:%s (advertising %s:%s)",
        settings.local_ip,
        settings.listen_port,
        settings.advertise_ip,
        settings.advertise_port,
    )
    try:
        await site.start()
    except OSError as error:
        _LOGGER.error(
            "Failed to start HTTP server on port %d: %s", settings.listen_port, error
        )
        await runner.cleanup()
        await session.close()
        raise

    bridge = Bridge(settings, session, device_manager, runner)

    # Start SSDP/UPnP responder
    try:
        bridge.protocol = await async_create_upnp_datagram_endpoint(
            settings.local_ip,
            True,  # upnp_bind_multicast
            settings.advertise_ip,
            settings.advertise_port,
        )
    except OSError as error:
        _LOGGER.error("Failed to create SSDP responder: %s", error)

    await device_manager.async_start()
    _LOGGER.info("Hue bridge emulator is running: %s", device_manager.get_stats())
    return bridge
