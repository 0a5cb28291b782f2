"""Process settings read from the environment."""
from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import socket
from typing import Mapping

import voluptuous as vol

from .config_schema import ConfigError
from .const import (
    CONF_ADVERTISE_IP,
    CONF_ADVERTISE_PORT,
    CONF_CONFIG_PATH,
    CONF_HASS_TOKEN,
    CONF_HASS_URL,
    CONF_LISTEN_PORT,
    CONF_LOCAL_IP,
    CONF_LOG_LEVEL,
    CONF_REFRESH_INTERVAL,
    DEFAULT_CONFIG_PATH,
    DEFAULT_LISTEN_PORT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_REFRESH_INTERVAL,
)

_LOGGER = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_PORT = vol.All(vol.Coerce(int), vol.Range(min=1, max=65535))


SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_HASS_URL, default=""): vol.All(str, vol.Strip),
        vol.Optional(CONF_HASS_TOKEN, default=""): vol.All(str, vol.Strip),
        vol.Optional(CONF_CONFIG_PATH, default=DEFAULT_CONFIG_PATH): vol.All(
            str, vol.Strip, vol.Length(min=1)
        ),
        vol.Optional(CONF_LOCAL_IP, default=None): vol.Any(None, str),
        vol.Optional(CONF_LISTEN_PORT, default=DEFAULT_LISTEN_PORT): _PORT,
        vol.Optional(CONF_ADVERTISE_IP, default=None): vol.Any(None, str),
        vol.Optional(CONF_ADVERTISE_PORT, default=None): vol.Any(None, "", _PORT),
        vol.Optional(CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL): vol.All(
            vol.Coerce(float), vol.Range(min=1)
        ),
        vol.Optional(CONF_LOG_LEVEL, default=DEFAULT_LOG_LEVEL): vol.All(
            str, vol.Upper, vol.In(LOG_LEVELS)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class Settings:
    hass_url: str
    hass_token: str
    config_path: str
    local_ip: str
    listen_port: int
    advertise_ip: str
    advertise_port: int
    refresh_interval: float
    log_level: str


def detect_local_ip() -> str:
    """Return the address of the interface used for outbound traffic."""
    # Connecting a UDP socket sends nothing, it only selects a route
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
        except OSError as err:
            _LOGGER.warning("Unable to detect local IP, using 127.0.0.1: %s", err)
            return "127.0.0.1"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Validate the environment and derive the effective settings."""
    if environ is None:
        environ = os.environ
    try:
        options = SETTINGS_SCHEMA(dict(environ))
    except vol.Invalid as err:
        raise ConfigError(f"Invalid environment: {err}") from err

    local_ip = options[CONF_LOCAL_IP] or detect_local_ip()
    listen_port = options[CONF_LISTEN_PORT]
    return Settings(
        hass_url=options[CONF_HASS_URL],
        hass_token=options[CONF_HASS_TOKEN],
        config_path=options[CONF_CONFIG_PATH],
        local_ip=local_ip,
        listen_port=listen_port,
        advertise_ip=options[CONF_ADVERTISE_IP] or local_ip,
        advertise_port=options[CONF_ADVERTISE_PORT] or listen_port,
        refresh_interval=options[CONF_REFRESH_INTERVAL],
        log_level=options[CONF_LOG_LEVEL],
    )
