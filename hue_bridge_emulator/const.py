"""Constants for the Hue bridge emulator."""

DOMAIN = "hue_bridge_emulator"

# Bridge identity: matches real Philips Hue bridge 2015 (BSB002)
HUE_SERIAL_NUMBER = "001788FFFE23BFC2"
HUE_UUID = "2f402f80-da50-11e1-9b23-001788255acc"
HUE_BRIDGE_NAME = "HASS BRIDGE"
HUE_BRIDGE_MAC = "00:17:88:23:bf:c2"
HUE_SW_VERSION = "01003542"
HUE_API_VERSION = "1.17.0"

# Hue API
HUE_API_USERNAME = "nouser"

# Environment keys
CONF_HASS_URL = "HASS_URL"
CONF_HASS_TOKEN = "HASS_TOKEN"
CONF_CONFIG_PATH = "CONFIG_PATH"
CONF_LOCAL_IP = "LOCAL_IP"
CONF_LISTEN_PORT = "LISTEN_PORT"
CONF_ADVERTISE_IP = "ADVERTISE_IP"
CONF_ADVERTISE_PORT = "ADVERTISE_PORT"
CONF_REFRESH_INTERVAL = "REFRESH_INTERVAL"
CONF_LOG_LEVEL = "LOG_LEVEL"

# Default values
DEFAULT_LISTEN_PORT = 80
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_LOG_LEVEL = "INFO"

# Storage keys
STORAGE_KEY = f"{DOMAIN}_config"
STORAGE_VERSION = 2

# Device types supported by the translators
DEVICE_TYPE_LIGHT = "light"
DEVICE_TYPE_COVER = "cover"
DEVICE_TYPE_CLIMATE = "climate"
DEVICE_TYPE_CUSTOM = "custom"

# Hub entity states
STATE_ON = "on"
STATE_OFF = "off"
STATE_CLOSED = "closed"
STATE_UNAVAILABLE = "unavailable"
STATE_UNKNOWN = "unknown"

# Hue API min/max values: https://developers.meethue.com/develop/hue-api/lights-api/
HUE_API_STATE_BRI_MIN = 0
HUE_API_STATE_BRI_MAX = 254

# Climate targets are mapped onto the brightness scale within this window (°C)
CLIMATE_TEMP_MIN = 7.0
CLIMATE_TEMP_MAX = 28.0

# Seconds between two upstream fetches, unless forced
REFRESH_COOLDOWN = 2.0
# Seconds between two background refreshes
DEFAULT_REFRESH_INTERVAL = 30.0
# Seconds before a single hub request is abandoned
HASS_REQUEST_TIMEOUT = 10.0

# SSDP
UPNP_MULTICAST_GROUP = "239.255.255.250"
UPNP_PORT = 1900
UPNP_MAX_AGE = 60
