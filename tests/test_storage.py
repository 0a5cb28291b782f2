"""Tests for configuration persistence and schema validation."""

import json

import pytest

from hue_bridge_emulator.config_schema import ConfigError, validate_config
from hue_bridge_emulator.hue_device import ActionConfig, Config, VirtualDevice
from hue_bridge_emulator.storage import ConfigStore, migrate_legacy_config


LEGACY_DOCUMENT = {
    "hass_url": "http://hass:8123",
    "hass_token": "secret",
    "local_ip": "192.168.1.20",
    "entity_mappings": {
        "light.kitchen": {
            "entity_id": "light.kitchen",
            "hue_id": "1",
            "name": "Kitchen",
            "type": "light",
            "exposed": True,
        },
        "cover.blinds": {
            "entity_id": "cover.blinds",
            "hue_id": "2",
            "type": "custom",
            "exposed": True,
            "custom_formula": {"to_hue_formula": "x * 2.54", "no_op_off": True},
        },
        "switch.hidden": {
            "entity_id": "switch.hidden",
            "hue_id": "3",
            "name": "Hidden",
            "exposed": False,
        },
    },
}


# ---------------------------------------------------------------------------
# Legacy migration
# ---------------------------------------------------------------------------


class TestMigrateLegacyConfig:

    def test_only_exposed_mappings_survive(self):
        config = migrate_legacy_config(LEGACY_DOCUMENT)
        assert [vd.entity_id for vd in config.virtual_devices] == [
            "light.kitchen",
            "cover.blinds",
        ]
        assert config.hass_url == "http://hass:8123"
        assert config.local_ip == "192.168.1.20"

    def test_name_falls_back_to_entity_id(self):
        config = migrate_legacy_config(LEGACY_DOCUMENT)
        assert config.virtual_devices[1].name == "cover.blinds"

    def test_custom_formula_becomes_action_config(self):
        config = migrate_legacy_config(LEGACY_DOCUMENT)
        action_config = config.virtual_devices[1].action_config
        assert action_config.to_hue_formula == "x * 2.54"
        assert action_config.no_op_off is True
        assert config.virtual_devices[0].action_config is None


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestValidateConfig:

    def test_defaults(self):
        data = validate_config({"virtual_devices": [{"name": "Lamp"}]})
        assert data["hass_url"] == ""
        assert data["virtual_devices"][0]["type"] == "light"
        assert data["virtual_devices"][0]["hue_id"] == ""

    def test_type_is_lowercased_and_unknown_kept(self):
        data = validate_config(
            {"virtual_devices": [{"name": "A", "type": "Cover"}, {"name": "B", "type": "fan"}]}
        )
        assert [vd["type"] for vd in data["virtual_devices"]] == ["cover", "fan"]

    def test_duplicate_hue_ids_rejected(self):
        with pytest.raises(ConfigError):
            validate_config(
                {
                    "virtual_devices": [
                        {"hue_id": "1", "name": "A"},
                        {"hue_id": "1", "name": "B"},
                    ]
                }
            )

    @pytest.mark.parametrize(
        "document",
        [
            {"virtual_devices": [{"name": ""}]},
            {"virtual_devices": [{"hue_id": "abc", "name": "A"}]},
            {"virtual_devices": "nope"},
            [],
        ],
    )
    def test_invalid(self, document):
        with pytest.raises(ConfigError):
            validate_config(document)


# ---------------------------------------------------------------------------
# ConfigStore
# ---------------------------------------------------------------------------


class TestConfigStore:

    @pytest.mark.asyncio
    async def test_missing_file_gives_empty_config(self, tmp_path):
        store = ConfigStore(tmp_path / "config.json")
        assert await store.async_get() == Config()

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        store = ConfigStore(path)
        config = Config(
            hass_url="http://hass:8123",
            hass_token="secret",
            virtual_devices=[
                VirtualDevice(
                    "1",
                    "Blinds",
                    "cover.blinds",
                    "cover",
                    ActionConfig(
                        on_payload={"position": 40},
                        on_effect="scene.turn_on",
                        on_effect_payload={"entity_id": "scene.evening"},
                        omit_entity_id=True,
                    ),
                )
            ],
        )
        await store.async_save(config)

        document = json.loads(path.read_text())
        assert document["version"] == 2
        assert document["key"] == "hue_bridge_emulator_config"
        assert document["data"]["virtual_devices"][0]["type"] == "cover"
        assert document["data"]["virtual_devices"][0]["action_config"][
            "on_effect_payload"
        ] == {"entity_id": "scene.evening"}

        assert await ConfigStore(path).async_get() == config

    @pytest.mark.asyncio
    async def test_reads_legacy_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(LEGACY_DOCUMENT))
        config = await ConfigStore(path).async_get()
        assert len(config.virtual_devices) == 2
        assert config.hass_token == "secret"

    @pytest.mark.asyncio
    async def test_newer_version_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"version": 99, "key": "x", "data": {}}))
        with pytest.raises(ConfigError):
            await ConfigStore(path).async_get()

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            await ConfigStore(path).async_get()
