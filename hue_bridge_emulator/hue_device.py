"""Virtual device and bridge state representations for the Hue bridge emulator."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any

from .const import DEVICE_TYPE_LIGHT, HUE_API_STATE_BRI_MAX, HUE_API_STATE_BRI_MIN


@dataclass
class ActionConfig:
    """Per-device overrides for translation and outbound service calls."""

    to_hue_formula: str = ""
    to_ha_formula: str = ""
    on_service: str = ""
    on_payload: dict[str, Any] = field(default_factory=dict)
    on_effect: str = ""
    on_effect_payload: dict[str, Any] = field(default_factory=dict)
    no_op_on: bool = False
    off_service: str = ""
    off_payload: dict[str, Any] = field(default_factory=dict)
    off_effect: str = ""
    off_effect_payload: dict[str, Any] = field(default_factory=dict)
    no_op_off: bool = False
    omit_entity_id: bool = False

    def is_no_op(self, turn_on: bool) -> bool:
        """Return True if the given transition must not reach the hub."""
        return self.no_op_on if turn_on else self.no_op_off

    def service_for(self, turn_on: bool) -> str:
        return self.on_service if turn_on else self.off_service

    def payload_for(self, turn_on: bool) -> dict[str, Any]:
        return self.on_payload if turn_on else self.off_payload

    def effect_for(self, turn_on: bool) -> str:
        return self.on_effect if turn_on else self.off_effect

    def effect_payload_for(self, turn_on: bool) -> dict[str, Any]:
        return self.on_effect_payload if turn_on else self.off_effect_payload

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage, leaving out unset fields."""
        data: dict[str, Any] = {
            "to_hue_formula": self.to_hue_formula,
            "to_ha_formula": self.to_ha_formula,
            "on_service": self.on_service,
            "on_payload": copy.deepcopy(self.on_payload),
            "on_effect": self.on_effect,
            "on_effect_payload": copy.deepcopy(self.on_effect_payload),
            "no_op_on": self.no_op_on,
            "off_service": self.off_service,
            "off_payload": copy.deepcopy(self.off_payload),
            "off_effect": self.off_effect,
            "off_effect_payload": copy.deepcopy(self.off_effect_payload),
            "no_op_off": self.no_op_off,
            "omit_entity_id": self.omit_entity_id,
        }
        return {key: value for key, value in data.items() if value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionConfig:
        """Create from dictionary data."""
        return cls(
            to_hue_formula=data.get("to_hue_formula") or "",
            to_ha_formula=data.get("to_ha_formula") or "",
            on_service=data.get("on_service") or "",
            on_payload=dict(data.get("on_payload") or {}),
            on_effect=data.get("on_effect") or "",
            on_effect_payload=dict(data.get("on_effect_payload") or {}),
            no_op_on=bool(data.get("no_op_on", False)),
            off_service=data.get("off_service") or "",
            off_payload=dict(data.get("off_payload") or {}),
            off_effect=data.get("off_effect") or "",
            off_effect_payload=dict(data.get("off_effect_payload") or {}),
            no_op_off=bool(data.get("no_op_off", False)),
            omit_entity_id=bool(data.get("omit_entity_id", False)),
        )


@dataclass
class VirtualDevice:
    """Binds one hub entity to one Hue light identity."""

    hue_id: str
    name: str
    entity_id: str = ""
    device_type: str = DEVICE_TYPE_LIGHT
    action_config: ActionConfig | None = None

    @property
    def entity_domain(self) -> str:
        """Return the hub domain of the bound entity, e.g. ``light``."""
        return self.entity_id.split(".", 1)[0] if "." in self.entity_id else ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        data: dict[str, Any] = {
            "hue_id": self.hue_id,
            "name": self.name,
            "entity_id": self.entity_id,
            "type": self.device_type,
        }
        if self.action_config is not None:
            data["action_config"] = self.action_config.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VirtualDevice:
        """Create from dictionary data."""
        action_config = data.get("action_config")
        return cls(
            hue_id=str(data.get("hue_id") or ""),
            name=data.get("name", ""),
            entity_id=data.get("entity_id") or "",
            device_type=data.get("type") or DEVICE_TYPE_LIGHT,
            action_config=(
                ActionConfig.from_dict(action_config) if action_config else None
            ),
        )


@dataclass
class Config:
    """Hub connection settings plus the ordered list of virtual devices."""

    hass_url: str = ""
    hass_token: str = ""
    local_ip: str = ""
    virtual_devices: list[VirtualDevice] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hass_url": self.hass_url,
            "hass_token": self.hass_token,
            "local_ip": self.local_ip,
            "virtual_devices": [device.to_dict() for device in self.virtual_devices],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        return cls(
            hass_url=data.get("hass_url") or "",
            hass_token=data.get("hass_token") or "",
            local_ip=data.get("local_ip") or "",
            virtual_devices=[
                VirtualDevice.from_dict(device)
                for device in data.get("virtual_devices") or []
            ],
        )


@dataclass
class BridgeState:
    """Hue-side state of a light: on/off, brightness and reachability."""

    on: bool = False
    bri: int = 0
    reachable: bool = True

    def __post_init__(self) -> None:
        """Keep brightness inside the Hue API range."""
        self.bri = max(HUE_API_STATE_BRI_MIN, min(HUE_API_STATE_BRI_MAX, int(self.bri)))


@dataclass(frozen=True)
class HueMetadata:
    """Static light description reported for a translator."""

    type: str
    modelid: str
    manufacturername: str


@dataclass
class HubAction:
    """An outbound hub service call, plus an optional follow-up effect."""

    service: str
    data: dict[str, Any] = field(default_factory=dict)
    effect: str | None = None
    effect_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class Device:
    """Materialized, translated view of a virtual device held in the cache."""

    hue_id: str
    name: str
    device_type: str
    entity_id: str
    state: BridgeState
    virtual_device: VirtualDevice

    def copy(self) -> Device:
        """Return a copy that shares no mutable state with this device."""
        return replace(
            self,
            state=replace(self.state),
            virtual_device=copy.deepcopy(self.virtual_device),
        )
