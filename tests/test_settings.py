"""Tests for environment settings and the startup bootstrap."""

import pytest

from hue_bridge_emulator import async_bootstrap_config
from hue_bridge_emulator.config_schema import ConfigError
from hue_bridge_emulator.hue_device import Config
from hue_bridge_emulator.settings import load_settings

from conftest import MemoryStore


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings({"LOCAL_IP": "10.0.0.5"})
        assert settings.config_path == "config.json"
        assert settings.listen_port == 80
        assert settings.advertise_ip == "10.0.0.5"
        assert settings.advertise_port == 80
        assert settings.refresh_interval == 30.0
        assert settings.log_level == "INFO"

    def test_overrides(self):
        settings = load_settings(
            {
                "HASS_URL": "http://hass:8123",
                "HASS_TOKEN": " token ",
                "LOCAL_IP": "10.0.0.5",
                "LISTEN_PORT": "8080",
                "ADVERTISE_IP": "192.168.1.2",
                "ADVERTISE_PORT": "80",
                "LOG_LEVEL": "debug",
                "UNRELATED": "ignored",
            }
        )
        assert settings.hass_token == "token"
        assert settings.listen_port == 8080
        assert settings.advertise_ip == "192.168.1.2"
        assert settings.advertise_port == 80
        assert settings.log_level == "DEBUG"

    def test_detects_local_ip(self, monkeypatch):
        monkeypatch.setattr(
            "hue_bridge_emulator.settings.detect_local_ip", lambda: "172.16.0.9"
        )
        settings = load_settings({})
        assert settings.local_ip == "172.16.0.9"

    @pytest.mark.parametrize(
        "environ",
        [
            {"LOCAL_IP": "10.0.0.5", "LISTEN_PORT": "0"},
            {"LOCAL_IP": "10.0.0.5", "LISTEN_PORT": "http"},
            {"LOCAL_IP": "10.0.0.5", "LOG_LEVEL": "chatty"},
        ],
    )
    def test_invalid(self, environ):
        with pytest.raises(ConfigError):
            load_settings(environ)


class TestBootstrap:

    def _settings(self, **environ):
        return load_settings({"LOCAL_IP": "10.0.0.5", **environ})

    @pytest.mark.asyncio
    async def test_environment_applied_and_persisted(self):
        store = MemoryStore()
        await async_bootstrap_config(
            store, self._settings(HASS_URL="http://hass:8123", HASS_TOKEN="token")
        )
        assert store.saves == 1
        assert store.config.hass_url == "http://hass:8123"
        assert store.config.hass_token == "token"
        assert store.config.local_ip == "10.0.0.5"

    @pytest.mark.asyncio
    async def test_stored_settings_win(self):
        store = MemoryStore(Config(hass_url="http://stored:8123", hass_token="stored"))
        await async_bootstrap_config(
            store, self._settings(HASS_URL="http://hass:8123", HASS_TOKEN="token")
        )
        assert store.saves == 0
        assert store.config.hass_url == "http://stored:8123"

    @pytest.mark.asyncio
    async def test_nothing_to_apply(self):
        store = MemoryStore()
        await async_bootstrap_config(store, self._settings())
        assert store.saves == 0
