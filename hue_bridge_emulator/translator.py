"""Translation between hub entity states and Hue bridge states.

Each device type has a strategy converting a raw hub state (the JSON object
returned by ``GET /api/states``) into a :class:`BridgeState`, and a
:class:`BridgeState` back into the hub service call that realizes it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any

from . import formula
from .const import (
    CLIMATE_TEMP_MAX,
    CLIMATE_TEMP_MIN,
    DEVICE_TYPE_CLIMATE,
    DEVICE_TYPE_COVER,
    DEVICE_TYPE_CUSTOM,
    DEVICE_TYPE_LIGHT,
    HUE_API_STATE_BRI_MAX,
    HUE_API_STATE_BRI_MIN,
    STATE_CLOSED,
    STATE_OFF,
    STATE_ON,
    STATE_UNAVAILABLE,
    STATE_UNKNOWN,
)
from .hue_device import ActionConfig, BridgeState, HubAction, HueMetadata, VirtualDevice

_LOGGER = logging.getLogger(__name__)

ATTR_ENTITY_ID = "entity_id"
ATTR_BRIGHTNESS = "brightness"
ATTR_CURRENT_POSITION = "current_position"
ATTR_POSITION = "position"
ATTR_TEMPERATURE = "temperature"
ATTR_VALUE = "value"

HASS_DOMAIN = "homeassistant"
SERVICE_TURN_ON = "turn_on"
SERVICE_TURN_OFF = "turn_off"
SERVICE_SET_COVER_POSITION = "set_cover_position"
SERVICE_CLOSE_COVER = "close_cover"
SERVICE_SET_TEMPERATURE = "set_temperature"
SERVICE_SET_VALUE = "set_value"

# Attributes read by the custom strategy, first match wins
CUSTOM_SOURCE_ATTRIBUTES = (
    ATTR_BRIGHTNESS,
    ATTR_CURRENT_POSITION,
    ATTR_TEMPERATURE,
    ATTR_VALUE,
)

_CUSTOM_OFF_STATES = {STATE_OFF, STATE_CLOSED, STATE_UNAVAILABLE, STATE_UNKNOWN}


def hue_brightness_to_hass(value: int) -> int:
    """Convert Hue brightness 0..254 to HA format 0..255."""
    return min(255, round((value / HUE_API_STATE_BRI_MAX) * 255))


def hass_to_hue_brightness(value: float) -> int:
    """Convert HA brightness 0..255 to Hue 1..254 scale."""
    return max(1, min(HUE_API_STATE_BRI_MAX, round((value / 255) * HUE_API_STATE_BRI_MAX)))


def _clamp_bri(value: float) -> int:
    return max(HUE_API_STATE_BRI_MIN, min(HUE_API_STATE_BRI_MAX, round(value)))


def _number(value: Any) -> float | None:
    """Return ``value`` as a float, or None if it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _attributes(hass_state: dict[str, Any]) -> dict[str, Any]:
    attributes = hass_state.get("attributes")
    return attributes if isinstance(attributes, dict) else {}


def _is_reachable(hass_state: dict[str, Any]) -> bool:
    return hass_state.get("state") != STATE_UNAVAILABLE


def _qualify(service: str, domain: str) -> str:
    """Prefix a bare service name with the entity domain."""
    if "." in service:
        return service
    return f"{domain or HASS_DOMAIN}.{service}"


class Translator(ABC):
    """Bidirectional translation for one device type."""

    metadata: HueMetadata

    @abstractmethod
    def to_bridge_state(
        self, hass_state: dict[str, Any], device: VirtualDevice
    ) -> BridgeState:
        """Derive the Hue state from a raw hub entity state."""

    @abstractmethod
    def _default_action(
        self, bridge_state: BridgeState, device: VirtualDevice, value: float | None
    ) -> tuple[str, dict[str, Any]]:
        """Return the default service and payload for a desired state.

        ``value`` is the scalar already converted by ``to_ha_formula``, or
        None when no formula is configured.
        """

    def to_hub_action(
        self, bridge_state: BridgeState, device: VirtualDevice
    ) -> HubAction:
        """Build the hub service call realizing ``bridge_state``."""
        config = device.action_config or ActionConfig()
        turn_on = bridge_state.on

        value: float | None = None
        if config.to_ha_formula:
            value = formula.evaluate(config.to_ha_formula, float(bridge_state.bri))

        service, data = self._default_action(bridge_state, device, value)
        data = {ATTR_ENTITY_ID: device.entity_id, **data}

        if override := config.service_for(turn_on):
            service = _qualify(override, device.entity_domain)
        data.update(config.payload_for(turn_on))

        effect_data: dict[str, Any] = {ATTR_ENTITY_ID: device.entity_id}
        if config.omit_entity_id or not device.entity_id:
            data.pop(ATTR_ENTITY_ID, None)
            effect_data.pop(ATTR_ENTITY_ID, None)
        # An effect payload may target another entity, e.g. a scene
        effect_data.update(config.effect_payload_for(turn_on))

        effect = config.effect_for(turn_on)
        return HubAction(
            service=service,
            data=data,
            effect=_qualify(effect, device.entity_domain) if effect else None,
            effect_data=effect_data if effect else {},
        )


class LightTranslator(Translator):
    """Lights, switches and anything else with plain on/off semantics."""

    metadata = HueMetadata(
        type="Extended color light",
        modelid="LCT001",
        manufacturername="Philips",
    )

    def to_bridge_state(
        self, hass_state: dict[str, Any], device: VirtualDevice
    ) -> BridgeState:
        is_on = hass_state.get("state") == STATE_ON
        brightness = _number(_attributes(hass_state).get(ATTR_BRIGHTNESS))

        if brightness is not None:
            bri = hass_to_hue_brightness(brightness)
        elif is_on:
            bri = HUE_API_STATE_BRI_MAX
        else:
            bri = 0

        return BridgeState(on=is_on, bri=bri, reachable=_is_reachable(hass_state))

    def _default_action(
        self, bridge_state: BridgeState, device: VirtualDevice, value: float | None
    ) -> tuple[str, dict[str, Any]]:
        domain = device.entity_domain
        # Only light entities accept a brightness; the rest go through the core
        # on/off services.
        service_domain = domain if domain == "light" else HASS_DOMAIN

        if not bridge_state.on:
            return f"{service_domain}.{SERVICE_TURN_OFF}", {}

        data: dict[str, Any] = {}
        if domain == "light" and bridge_state.bri > 0:
            data[ATTR_BRIGHTNESS] = (
                round(value) if value is not None
                else hue_brightness_to_hass(bridge_state.bri)
            )
        return f"{service_domain}.{SERVICE_TURN_ON}", data


class CoverTranslator(Translator):
    """Covers: open/closed maps to on/off, position maps to brightness."""

    metadata = HueMetadata(
        type="Window covering device",
        modelid="LCT001",
        manufacturername="Philips",
    )

    def to_bridge_state(
        self, hass_state: dict[str, Any], device: VirtualDevice
    ) -> BridgeState:
        state = hass_state.get("state")
        position = _number(_attributes(hass_state).get(ATTR_CURRENT_POSITION))

        return BridgeState(
            on=state not in (STATE_CLOSED, STATE_UNAVAILABLE),
            bri=_clamp_bri(position * 2.54) if position is not None else 0,
            reachable=_is_reachable(hass_state),
        )

    def _default_action(
        self, bridge_state: BridgeState, device: VirtualDevice, value: float | None
    ) -> tuple[str, dict[str, Any]]:
        if not bridge_state.on:
            return f"cover.{SERVICE_CLOSE_COVER}", {}

        if value is not None:
            position = round(value)
        elif bridge_state.bri == 0:
            # "Turn on" without a level means fully open
            position = 100
        else:
            position = round(bridge_state.bri / 2.54)
        return f"cover.{SERVICE_SET_COVER_POSITION}", {
            ATTR_POSITION: max(0, min(100, position))
        }


class ClimateTranslator(Translator):
    """Thermostats: the target temperature maps to brightness."""

    metadata = HueMetadata(
        type="Dimmable light",
        modelid="LWB004",
        manufacturername="Philips",
    )

    def to_bridge_state(
        self, hass_state: dict[str, Any], device: VirtualDevice
    ) -> BridgeState:
        reachable = _is_reachable(hass_state)
        temperature = _number(_attributes(hass_state).get(ATTR_TEMPERATURE))

        bri = 0
        if temperature is not None:
            temperature = max(CLIMATE_TEMP_MIN, min(CLIMATE_TEMP_MAX, temperature))
            bri = _clamp_bri(
                (temperature - CLIMATE_TEMP_MIN)
                * HUE_API_STATE_BRI_MAX
                / (CLIMATE_TEMP_MAX - CLIMATE_TEMP_MIN)
            )

        # A thermostat is always present while the hub can reach it
        return BridgeState(on=reachable, bri=bri, reachable=reachable)

    def _default_action(
        self, bridge_state: BridgeState, device: VirtualDevice, value: float | None
    ) -> tuple[str, dict[str, Any]]:
        if not bridge_state.on:
            return f"climate.{SERVICE_TURN_OFF}", {}

        if value is None:
            value = round(
                bridge_state.bri
                * (CLIMATE_TEMP_MAX - CLIMATE_TEMP_MIN)
                / HUE_API_STATE_BRI_MAX
                + CLIMATE_TEMP_MIN,
                1,
            )
        return f"climate.{SERVICE_SET_TEMPERATURE}", {ATTR_TEMPERATURE: value}


class CustomTranslator(Translator):
    """User-defined mappings driven by formulas and explicit services."""

    metadata = HueMetadata(
        type="Extended color light",
        modelid="LCT001",
        manufacturername="Philips",
    )

    def to_bridge_state(
        self, hass_state: dict[str, Any], device: VirtualDevice
    ) -> BridgeState:
        state = hass_state.get("state")
        attributes = _attributes(hass_state)

        source: float | None = None
        for attribute in CUSTOM_SOURCE_ATTRIBUTES:
            if (source := _number(attributes.get(attribute))) is not None:
                break
        else:
            source = _number(state)

        bri = 0
        if source is not None:
            config = device.action_config
            if config is not None and config.to_hue_formula:
                source = formula.evaluate(config.to_hue_formula, source)
            bri = _clamp_bri(source)

        return BridgeState(
            on=state not in _CUSTOM_OFF_STATES,
            bri=bri,
            reachable=_is_reachable(hass_state),
        )

    def _default_action(
        self, bridge_state: BridgeState, device: VirtualDevice, value: float | None
    ) -> tuple[str, dict[str, Any]]:
        if value is None:
            value = float(bridge_state.bri)
        domain = device.entity_domain
        turn_on = bridge_state.on

        if domain == "light":
            if not turn_on:
                return f"light.{SERVICE_TURN_OFF}", {}
            return f"light.{SERVICE_TURN_ON}", {ATTR_BRIGHTNESS: round(value)}
        if domain == "cover":
            if not turn_on:
                return f"cover.{SERVICE_CLOSE_COVER}", {}
            return f"cover.{SERVICE_SET_COVER_POSITION}", {ATTR_POSITION: round(value)}
        if domain == "climate":
            if not turn_on:
                return f"climate.{SERVICE_TURN_OFF}", {}
            return f"climate.{SERVICE_SET_TEMPERATURE}", {ATTR_TEMPERATURE: value}
        if domain in ("input_number", "number"):
            return f"{domain}.{SERVICE_SET_VALUE}", {ATTR_VALUE: value}

        return (
            f"{HASS_DOMAIN}.{SERVICE_TURN_ON if turn_on else SERVICE_TURN_OFF}",
            {},
        )


TRANSLATORS: dict[str, Translator] = {
    DEVICE_TYPE_LIGHT: LightTranslator(),
    DEVICE_TYPE_COVER: CoverTranslator(),
    DEVICE_TYPE_CLIMATE: ClimateTranslator(),
    DEVICE_TYPE_CUSTOM: CustomTranslator(),
}


# Unknown device types already reported, so each is logged once
_UNKNOWN_TYPES_LOGGED: set[str | None] = set()


def get_translator(device_type: str | None) -> Translator:
    """Return the strategy for ``device_type``, falling back to light."""
    if (translator := TRANSLATORS.get(device_type or "")) is not None:
        return translator
    if device_type not in _UNKNOWN_TYPES_LOGGED:
        _UNKNOWN_TYPES_LOGGED.add(device_type)
        _LOGGER.debug("Unknown device type %r, translating as light", device_type)
    return TRANSLATORS[DEVICE_TYPE_LIGHT]
