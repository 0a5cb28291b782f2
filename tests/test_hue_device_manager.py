"""Tests for the device cache and orchestration layer."""

import asyncio
import logging

import pytest

from hue_bridge_emulator.hass_client import HassConnectionError
from hue_bridge_emulator.hue_device import ActionConfig, Config, VirtualDevice
from hue_bridge_emulator.hue_device_manager import (
    DeviceNotFoundError,
    HueDeviceManager,
    assign_hue_ids,
)

from conftest import MemoryStore, hass_state


def _manager(hass, devices, **kwargs):
    store = MemoryStore(
        Config(hass_url="http://hass:8123", hass_token="token", virtual_devices=devices)
    )
    return HueDeviceManager(hass, store, **kwargs), store


# ---------------------------------------------------------------------------
# Hue ID assignment
# ---------------------------------------------------------------------------


class TestAssignHueIds:

    def test_new_ids_exceed_max(self):
        config = Config(
            virtual_devices=[
                VirtualDevice("1", "A"),
                VirtualDevice("5", "B"),
                VirtualDevice("", "C"),
                VirtualDevice("", "D"),
            ]
        )
        assert assign_hue_ids(config) is True
        assert [vd.hue_id for vd in config.virtual_devices] == ["1", "5", "6", "7"]

    def test_existing_ids_untouched(self):
        config = Config(virtual_devices=[VirtualDevice("3", "A")])
        assert assign_hue_ids(config) is False
        assert config.virtual_devices[0].hue_id == "3"

    @pytest.mark.asyncio
    async def test_setup_persists_assigned_ids(self, hass):
        manager, store = _manager(hass, [VirtualDevice("", "Lamp", "light.lamp")])
        await manager.async_setup()
        assert store.saves == 1
        assert store.config.virtual_devices[0].hue_id == "1"
        hass.configure.assert_called_once_with("http://hass:8123", "token")

    @pytest.mark.asyncio
    async def test_update_config_keeps_ids(self, hass):
        manager, store = _manager(hass, [VirtualDevice("4", "Lamp", "light.lamp")])
        config = await manager.async_get_config()
        config.virtual_devices.append(VirtualDevice("", "Fan", "switch.fan"))

        await manager.async_update_config(config)

        ids = [vd.hue_id for vd in store.config.virtual_devices]
        assert ids == ["4", "5"]
        devices = await manager.async_get_devices()
        assert [device.hue_id for device in devices] == ["4", "5"]


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:

    @pytest.mark.asyncio
    async def test_cooldown_single_fetch(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        await asyncio.gather(*(manager.async_get_devices() for _ in range(5)))
        await manager.async_refresh()
        assert hass.async_get_states.await_count == 1
        assert manager.generation == 1

    @pytest.mark.asyncio
    async def test_force_bypasses_cooldown(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        await manager.async_refresh()
        await manager.async_refresh(force=True)
        assert hass.async_get_states.await_count == 2
        assert manager.generation == 2

    @pytest.mark.asyncio
    async def test_unconfigured_hub_is_empty(self, hass):
        hass.is_configured = False
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        assert await manager.async_get_devices() == []
        hass.async_get_states.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unconfiguring_hub_clears_cache(self, hass):
        hass.async_get_states.return_value = [hass_state("light.kitchen", "on")]
        manager, _ = _manager(hass, [VirtualDevice("1", "Kitchen", "light.kitchen")])
        assert [d.name for d in await manager.async_get_devices()] == ["Kitchen"]

        hass.is_configured = False
        await manager.async_update_config(
            Config(virtual_devices=[VirtualDevice("", "Other", "light.other")])
        )

        assert await manager.async_get_devices() == []
        assert manager.generation == 2

    @pytest.mark.asyncio
    async def test_missing_entity_is_unreachable(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Gone", "light.gone")])
        device = await manager.async_get_device("1")
        assert device.state.reachable is False
        assert device.state.on is False

    @pytest.mark.asyncio
    async def test_devices_sorted_by_numeric_id(self, hass):
        manager, _ = _manager(
            hass,
            [
                VirtualDevice("10", "Ten", "light.ten"),
                VirtualDevice("2", "Two", "light.two"),
            ],
        )
        devices = await manager.async_get_devices()
        assert [device.hue_id for device in devices] == ["2", "10"]

    @pytest.mark.asyncio
    async def test_unknown_device(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        with pytest.raises(DeviceNotFoundError):
            await manager.async_get_device("99")

    @pytest.mark.asyncio
    async def test_copies_do_not_leak(self, hass):
        hass.async_get_states.return_value = [hass_state("light.lamp", "on")]
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        device = await manager.async_get_device("1")
        device.state.on = False
        device.virtual_device.name = "Changed"

        again = await manager.async_get_device("1")
        assert again.state.on is True
        assert again.virtual_device.name == "Lamp"

    @pytest.mark.asyncio
    async def test_refresh_loop(self, hass):
        manager, _ = _manager(
            hass,
            [VirtualDevice("1", "Lamp", "light.lamp")],
            refresh_interval=0.01,
            refresh_cooldown=0,
        )
        await manager.async_start()
        await asyncio.sleep(0.1)
        await manager.async_stop()
        assert hass.async_get_states.await_count >= 1


# ---------------------------------------------------------------------------
# State changes
# ---------------------------------------------------------------------------


class TestSetState:

    @pytest.mark.asyncio
    async def test_optimistic_update_and_hub_call(self, hass):
        hass.async_get_states.return_value = [
            hass_state("light.lamp", "on", brightness=255)
        ]
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])

        await manager.async_set_state("1", {"on": False})
        device = await manager.async_get_device("1")
        assert device.state.on is False

        await manager.async_wait_pending()
        hass.async_call_service.assert_awaited_once_with(
            "light.turn_off", {"entity_id": "light.lamp"}
        )

    @pytest.mark.asyncio
    async def test_brightness_is_clamped(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        await manager.async_set_state("1", {"on": True, "bri": 999})
        device = await manager.async_get_device("1")
        assert device.state.bri == 254

        await manager.async_wait_pending()
        hass.async_call_service.assert_awaited_once_with(
            "light.turn_on", {"entity_id": "light.lamp", "brightness": 255}
        )

    @pytest.mark.asyncio
    async def test_no_op_off_skips_hub(self, hass):
        hass.async_get_states.return_value = [hass_state("light.lamp", "on")]
        manager, _ = _manager(
            hass,
            [
                VirtualDevice(
                    "1", "Lamp", "light.lamp", "light", ActionConfig(no_op_off=True)
                )
            ],
        )
        await manager.async_set_state("1", {"on": False})
        await manager.async_wait_pending()
        hass.async_call_service.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_effect_follows_primary_call(self, hass):
        manager, _ = _manager(
            hass,
            [
                VirtualDevice(
                    "1",
                    "Movie",
                    "light.lamp",
                    "light",
                    ActionConfig(off_effect="scene.turn_on"),
                )
            ],
        )
        await manager.async_set_state("1", {"on": False})
        await manager.async_wait_pending()
        assert [call.args[0] for call in hass.async_call_service.await_args_list] == [
            "light.turn_off",
            "scene.turn_on",
        ]

    @pytest.mark.asyncio
    async def test_empty_update_does_nothing(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        await manager.async_set_state("1", {})
        await manager.async_wait_pending()
        hass.async_call_service.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_device(self, hass):
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])
        with pytest.raises(DeviceNotFoundError):
            await manager.async_set_state("42", {"on": True})

    @pytest.mark.asyncio
    async def test_hub_failure_is_logged(self, hass, caplog):
        hass.async_call_service.side_effect = HassConnectionError("boom")
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])

        with caplog.at_level(logging.ERROR):
            await manager.async_set_state("1", {"on": True})
            await manager.async_wait_pending()

        assert "Error setting hub state for Lamp" in caplog.text
        assert manager.get_stats()["pending_calls"] == 0

    @pytest.mark.asyncio
    async def test_hub_failure_keeps_optimistic_state(self, hass):
        hass.async_get_states.return_value = [hass_state("light.lamp", "on")]
        hass.async_call_service.side_effect = HassConnectionError("boom")
        manager, _ = _manager(hass, [VirtualDevice("1", "Lamp", "light.lamp")])

        await manager.async_set_state("1", {"on": False})
        await manager.async_wait_pending()

        hass.async_call_service.assert_awaited_once()
        device = await manager.async_get_device("1")
        assert device.state.on is False
