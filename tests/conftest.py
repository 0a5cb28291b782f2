"""Shared fixtures and fakes."""

import copy
from unittest.mock import AsyncMock, MagicMock

import pytest

from hue_bridge_emulator.hue_device import Config


class MemoryStore:
    """ConfigStore stand-in keeping the configuration in memory."""

    def __init__(self, config=None):
        self.config = config or Config()
        self.saves = 0

    async def async_get(self):
        return copy.deepcopy(self.config)

    async def async_save(self, config):
        self.config = copy.deepcopy(config)
        self.saves += 1


def hass_state(entity_id, state, **attributes):
    return {"entity_id": entity_id, "state": state, "attributes": attributes}


@pytest.fixture
def hass():
    """A configured hub client mock with no entities."""
    client = MagicMock()
    client.is_configured = True
    client.async_get_states = AsyncMock(return_value=[])
    client.async_get_entities = AsyncMock(return_value=[])
    client.async_call_service = AsyncMock(return_value=None)
    return client
