"""JSON persistence for the emulator configuration.

The file uses a versioned envelope::

    {"version": 2, "key": "hue_bridge_emulator_config", "data": {...}}

Files written by older releases hold a flat document with an
``entity_mappings`` dictionary instead of the ordered ``virtual_devices``
list; those are converted once by :func:`migrate_legacy_config` when read.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any

import voluptuous as vol

from .config_schema import LEGACY_CONFIG_SCHEMA, ConfigError, validate_config
from .const import STORAGE_KEY, STORAGE_VERSION
from .hue_device import ActionConfig, Config, VirtualDevice

_LOGGER = logging.getLogger(__name__)


def migrate_legacy_config(data: dict[str, Any]) -> Config:
    """Convert a legacy ``entity_mappings`` document into a Config.

    Only mappings flagged ``exposed`` are kept. The flag itself has no
    counterpart in the new layout and is dropped.
    """
    try:
        legacy = LEGACY_CONFIG_SCHEMA(data)
    except vol.Invalid as err:
        _LOGGER.warning("Ignoring unreadable legacy configuration: %s", err)
        return Config()

    config = Config(
        hass_url=legacy["hass_url"],
        hass_token=legacy["hass_token"],
        local_ip=legacy["local_ip"],
    )

    for key, mapping in (legacy["entity_mappings"] or {}).items():
        if not mapping["exposed"]:
            continue
        entity_id = mapping["entity_id"] or key
        formula = mapping.get("custom_formula")
        config.virtual_devices.append(
            VirtualDevice(
                hue_id=mapping["hue_id"],
                name=mapping["name"] or entity_id,
                entity_id=entity_id,
                device_type=mapping["type"] or "light",
                action_config=ActionConfig.from_dict(formula) if formula else None,
            )
        )

    _LOGGER.info(
        "Migrated legacy configuration: %d exposed mapping(s)",
        len(config.virtual_devices),
    )
    return config


class ConfigStore:
    """Load and save the configuration file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def async_get(self) -> Config:
        """Return the stored configuration, or an empty one."""
        async with self._lock:
            raw = await asyncio.get_running_loop().run_in_executor(None, self._read)
        if raw is None:
            return Config()
        return self._parse(raw)

    async def async_save(self, config: Config) -> None:
        """Persist ``config`` atomically."""
        document = {
            "version": STORAGE_VERSION,
            "key": STORAGE_KEY,
            "data": config.to_dict(),
        }
        async with self._lock:
            await asyncio.get_running_loop().run_in_executor(
                None, self._write, document
            )
        _LOGGER.debug("Saved configuration to %s", self.path)

    def _read(self) -> Any:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            _LOGGER.info("No configuration at %s, starting fresh", self.path)
            return None
        try:
            return json.loads(text)
        except ValueError as err:
            raise ConfigError(f"{self.path} is not valid JSON: {err}") from err

    def _write(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _parse(self, raw: Any) -> Config:
        if not isinstance(raw, dict):
            raise ConfigError(f"{self.path} does not hold a JSON object")

        if "version" in raw and "data" in raw:
            version = raw["version"]
            if isinstance(version, int) and version > STORAGE_VERSION:
                raise ConfigError(
                    f"{self.path} was written by a newer release (version {version})"
                )
            document = raw["data"] or {}
        else:
            document = raw

        config = Config.from_dict(validate_config(document))
        if not config.virtual_devices:
            return migrate_legacy_config(document)
        return config
