"""Device cache and orchestration for the Hue bridge emulator.

The manager keeps one translated view ("generation") of every configured
virtual device. A generation is rebuilt wholesale from the hub on refresh and
swapped in under the map lock; readers only ever see copies.
"""
from __future__ import annotations

import asyncio
from dataclasses import replace
import logging
import threading
import time
from typing import Any

from .const import (
    DEFAULT_REFRESH_INTERVAL,
    HUE_API_STATE_BRI_MAX,
    HUE_API_STATE_BRI_MIN,
    REFRESH_COOLDOWN,
    STATE_UNAVAILABLE,
)
from .hass_client import HassClient
from .hue_device import Config, Device, HubAction
from .storage import ConfigStore
from .translator import get_translator

_LOGGER = logging.getLogger(__name__)


class DeviceNotFoundError(KeyError):
    """Raised when a Hue ID is not present in the cache."""

    def __init__(self, hue_id: str) -> None:
        super().__init__(hue_id)
        self.hue_id = hue_id

    def __str__(self) -> str:
        return f"device {self.hue_id} not found"


def _sort_key(hue_id: str) -> tuple[int, str]:
    return (int(hue_id), hue_id) if hue_id.isdigit() else (0, hue_id)


def assign_hue_ids(config: Config) -> bool:
    """Give every virtual device without a Hue ID one above the current max.

    Returns True if any ID was assigned.
    """
    max_id = max(
        (int(vd.hue_id) for vd in config.virtual_devices if vd.hue_id.isdigit()),
        default=0,
    )
    changed = False
    for vd in config.virtual_devices:
        if not vd.hue_id:
            max_id += 1
            vd.hue_id = str(max_id)
            changed = True
    return changed


class HueDeviceManager:
    """Caches translated virtual devices and relays changes to the hub."""

    def __init__(
        self,
        hass: HassClient,
        store: ConfigStore,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        refresh_cooldown: float = REFRESH_COOLDOWN,
    ) -> None:
        """Initialize the device manager."""
        self._hass = hass
        self._store = store
        self._refresh_interval = refresh_interval
        self._refresh_cooldown = refresh_cooldown

        # Single-flight refresh
        self._refresh_lock = asyncio.Lock()
        self._last_refresh = 0.0
        # Guards _devices / _generation / _initialized
        self._devices_lock = threading.Lock()
        self._devices: dict[str, Device] = {}
        self._generation = 0
        self._initialized = False

        self._refresh_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def generation(self) -> int:
        """Number of cache generations built so far."""
        with self._devices_lock:
            return self._generation

    async def async_setup(self) -> None:
        """Load the configuration and point the hub client at it."""
        _LOGGER.info("Setting up Hue device manager")
        config = await self._store.async_get()
        if assign_hue_ids(config):
            _LOGGER.info("Assigned missing Hue IDs, saving configuration")
            await self._store.async_save(config)
        if config.hass_url and config.hass_token:
            self._hass.configure(config.hass_url, config.hass_token)

    async def async_start(self) -> None:
        """Start the periodic refresh loop."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(
                self._async_refresh_loop(), name="hue-device-refresh"
            )

    async def async_stop(self) -> None:
        """Stop the refresh loop and wait for outstanding hub calls."""
        _LOGGER.info("Stopping Hue device manager")
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        await self.async_wait_pending()

    async def async_wait_pending(self) -> None:
        """Wait until every dispatched hub call has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _async_refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.async_refresh()
            except Exception as err:  # noqa: BLE001
                _LOGGER.warning("Periodic refresh failed: %s", err)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def async_refresh(self, force: bool = False) -> None:
        """Rebuild the device cache from the hub.

        Returns immediately if another refresh finished within the cooldown
        window, unless ``force`` is set. A hub that is not configured is not
        an error; the cache is emptied and no fetch is made.
        """
        async with self._refresh_lock:
            with self._devices_lock:
                initialized = self._initialized
            if (
                not force
                and initialized
                and time.monotonic() - self._last_refresh < self._refresh_cooldown
            ):
                return

            if not self._hass.is_configured:
                _LOGGER.debug("Hub not configured, skipping refresh")
                with self._devices_lock:
                    if self._devices:
                        # Devices from a previous hub must not outlive it
                        self._devices = {}
                        self._generation += 1
                return

            config = await self._store.async_get()
            states = await self._hass.async_get_states()

            by_entity: dict[str, dict[str, Any]] = {}
            for state in states:
                if entity_id := state.get("entity_id"):
                    by_entity[entity_id] = state

            devices: dict[str, Device] = {}
            for vd in config.virtual_devices:
                if not vd.hue_id:
                    _LOGGER.warning("Skipping %s: no Hue ID assigned", vd.name)
                    continue
                state = by_entity.get(vd.entity_id) or {
                    "entity_id": vd.entity_id,
                    "state": STATE_UNAVAILABLE,
                }
                translator = get_translator(vd.device_type)
                devices[vd.hue_id] = Device(
                    hue_id=vd.hue_id,
                    name=vd.name,
                    device_type=vd.device_type,
                    entity_id=vd.entity_id,
                    state=translator.to_bridge_state(state, vd),
                    virtual_device=vd,
                )

            with self._devices_lock:
                self._devices = devices
                self._generation += 1
                self._initialized = True
                generation = self._generation
            self._last_refresh = time.monotonic()

        _LOGGER.debug(
            "Refreshed %d device(s) from %d hub state(s), generation %d",
            len(devices),
            len(states),
            generation,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _async_ensure_initialized(self) -> None:
        with self._devices_lock:
            initialized = self._initialized
        if not initialized:
            await self.async_refresh()

    async def async_get_devices(self) -> list[Device]:
        """Return copies of all cached devices, ordered by Hue ID."""
        await self._async_ensure_initialized()
        with self._devices_lock:
            devices = [device.copy() for device in self._devices.values()]
        return sorted(devices, key=lambda device: _sort_key(device.hue_id))

    async def async_get_device(self, hue_id: str) -> Device:
        """Return a copy of one cached device."""
        await self._async_ensure_initialized()
        with self._devices_lock:
            device = self._devices.get(hue_id)
            if device is None:
                raise DeviceNotFoundError(hue_id)
            return device.copy()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def async_set_state(self, hue_id: str, update: dict[str, Any]) -> None:
        """Apply a partial Hue state update and relay it to the hub.

        The cached state changes immediately. The hub call runs in the
        background; its failure is logged and corrected by the next refresh.
        """
        await self._async_ensure_initialized()

        with self._devices_lock:
            device = self._devices.get(hue_id)
            if device is None:
                raise DeviceNotFoundError(hue_id)
            if not update:
                return

            desired = replace(device.state)
            if "on" in update:
                desired.on = bool(update["on"])
            if "bri" in update:
                desired.bri = max(
                    HUE_API_STATE_BRI_MIN,
                    min(HUE_API_STATE_BRI_MAX, int(update["bri"])),
                )

            vd = device.virtual_device
            action = get_translator(device.device_type).to_hub_action(desired, vd)

            if vd.action_config is not None and vd.action_config.is_no_op(desired.on):
                _LOGGER.debug(
                    "No-op for %s (%s), not calling the hub",
                    device.name,
                    "on" if desired.on else "off",
                )
                return

            # Optimistic update, visible to readers before the hub confirms
            device.state.on = desired.on
            device.state.bri = desired.bri
            name = device.name

        self._dispatch(name, action)

    def _dispatch(self, name: str, action: HubAction) -> None:
        task = asyncio.create_task(self._async_call_hub(name, action))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _async_call_hub(self, name: str, action: HubAction) -> None:
        try:
            await self._hass.async_call_service(action.service, action.data)
            if action.effect:
                await self._hass.async_call_service(action.effect, action.effect_data)
        except Exception as err:  # noqa: BLE001
            _LOGGER.error("Error setting hub state for %s via %s: %s", name, action.service, err)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def async_get_config(self) -> Config:
        """Return the stored configuration."""
        return await self._store.async_get()

    async def async_update_config(self, config: Config) -> None:
        """Save a new configuration and rebuild the cache from it.

        Devices keep their Hue IDs; new devices get IDs above the current
        maximum.
        """
        assign_hue_ids(config)
        await self._store.async_save(config)
        self._hass.configure(config.hass_url, config.hass_token)

        _LOGGER.info(
            "Configuration updated: %d virtual device(s)", len(config.virtual_devices)
        )
        await self.async_refresh(force=True)

    async def async_get_entities(self) -> list[dict[str, str]]:
        """Return the hub entities available for binding."""
        return await self._hass.async_get_entities()

    def get_stats(self) -> dict[str, Any]:
        """Get manager statistics."""
        with self._devices_lock:
            return {
                "total_devices": len(self._devices),
                "generation": self._generation,
                "initialized": self._initialized,
                "pending_calls": len(self._pending),
            }
