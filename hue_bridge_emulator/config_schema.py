"""Voluptuous schemas for the persisted configuration document."""
from __future__ import annotations

from typing import Any

import voluptuous as vol

from .const import DEVICE_TYPE_LIGHT


class ConfigError(Exception):
    """Raised when a configuration document is invalid."""


def _string(value: Any) -> str:
    """Coerce None to an empty string and everything else to ``str``."""
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise vol.Invalid("expected a string")
    return str(value).strip()


def _hue_id(value: Any) -> str:
    value = _string(value)
    if value and not value.isdigit():
        raise vol.Invalid(f"hue_id must be a positive integer, got {value!r}")
    return value


ACTION_CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("to_hue_formula", default=""): _string,
        vol.Optional("to_ha_formula", default=""): _string,
        vol.Optional("on_service", default=""): _string,
        vol.Optional("on_payload", default=dict): vol.Any(None, dict),
        vol.Optional("on_effect", default=""): _string,
        vol.Optional("on_effect_payload", default=dict): vol.Any(None, dict),
        vol.Optional("no_op_on", default=False): vol.Boolean(),
        vol.Optional("off_service", default=""): _string,
        vol.Optional("off_payload", default=dict): vol.Any(None, dict),
        vol.Optional("off_effect", default=""): _string,
        vol.Optional("off_effect_payload", default=dict): vol.Any(None, dict),
        vol.Optional("no_op_off", default=False): vol.Boolean(),
        vol.Optional("omit_entity_id", default=False): vol.Boolean(),
    },
    extra=vol.REMOVE_EXTRA,
)

VIRTUAL_DEVICE_SCHEMA = vol.Schema(
    {
        vol.Optional("hue_id", default=""): _hue_id,
        vol.Required("name"): vol.All(_string, vol.Length(min=1)),
        vol.Optional("entity_id", default=""): _string,
        # Unknown types are kept and translated as lights
        vol.Optional("type", default=DEVICE_TYPE_LIGHT): vol.All(
            _string, vol.Lower, lambda value: value or DEVICE_TYPE_LIGHT
        ),
        vol.Optional("action_config"): vol.Any(None, ACTION_CONFIG_SCHEMA),
    },
    extra=vol.REMOVE_EXTRA,
)


def _unique_hue_ids(devices: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    for device in devices:
        hue_id = device.get("hue_id")
        if not hue_id:
            continue
        if hue_id in seen:
            raise vol.Invalid(f"duplicate hue_id {hue_id}")
        seen.add(hue_id)
    return devices


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("hass_url", default=""): _string,
        vol.Optional("hass_token", default=""): _string,
        vol.Optional("local_ip", default=""): _string,
        vol.Optional("virtual_devices", default=list): vol.All(
            vol.Any(None, [VIRTUAL_DEVICE_SCHEMA]),
            lambda value: value or [],
            _unique_hue_ids,
        ),
    },
    extra=vol.REMOVE_EXTRA,
)

LEGACY_MAPPING_SCHEMA = vol.Schema(
    {
        vol.Optional("entity_id", default=""): _string,
        vol.Optional("hue_id", default=""): _hue_id,
        vol.Optional("name", default=""): _string,
        vol.Optional("type", default=DEVICE_TYPE_LIGHT): vol.All(_string, vol.Lower),
        vol.Optional("exposed", default=False): vol.Boolean(),
        vol.Optional("custom_formula"): vol.Any(None, ACTION_CONFIG_SCHEMA),
    },
    extra=vol.REMOVE_EXTRA,
)

LEGACY_CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional("hass_url", default=""): _string,
        vol.Optional("hass_token", default=""): _string,
        vol.Optional("local_ip", default=""): _string,
        vol.Optional("entity_mappings", default=dict): vol.Any(
            None, {str: LEGACY_MAPPING_SCHEMA}
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


def validate_config(data: Any) -> dict[str, Any]:
    """Validate a configuration document, raising ConfigError on failure."""
    try:
        return CONFIG_SCHEMA(data)
    except vol.Invalid as err:
        raise ConfigError(f"Invalid configuration: {err}") from err
