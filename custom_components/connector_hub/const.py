"""Constants for the Connector hub integration.

This module contains the wire-protocol constants, timing defaults,
configuration keys and the lookup tables used to describe hub devices.
"""

from enum import IntEnum, StrEnum

DOMAIN = "connector_hub"

MULTICAST_IP = "238.0.0.18"
UDP_PORT = 32100

# Wire protocol retry policy
DEFAULT_MAX_RETRIES = 3
DEFAULT_SOCKET_TIMEOUT_MS = 250

# Discovery timing, in seconds
DISCOVERY_FREQUENCY = 1.0
DISCOVERY_DURATION = 15.0
DISCOVERY_INTERVAL = 5 * 60.0

DEFAULT_REFRESH_INTERVAL = 5

# Position scale
MIN_POSITION = 0
MAX_POSITION = 100
HALF_OPEN_POSITION = 50

LOW_BATTERY_PERCENT = 15

CONF_CONNECTOR_KEY = "connector_key"
CONF_HUB_IPS = "hub_ips"
CONF_REVERSE_DIRECTION = "reverse_direction"
CONF_MAX_RETRIES = "max_retries"
CONF_SOCKET_TIMEOUT = "socket_timeout"
CONF_REFRESH_INTERVAL = "refresh_interval"

ERROR_INVALID_KEY = "invalid_key"
ERROR_INVALID_HOST = "invalid_host"
ERROR_INVALID_OPTIONS = "invalid_options"
ERROR_CANNOT_CONNECT = "cannot_connect"
ERROR_UNKNOWN = "unknown_error"

SIGNAL_DEVICE_ADDED = f"{DOMAIN}_device_added"
SIGNAL_DEVICE_REMOVED = f"{DOMAIN}_device_removed"


class MessageType(StrEnum):
    """Message types exchanged with the hub."""

    GET_DEVICE_LIST = "GetDeviceList"
    GET_DEVICE_LIST_ACK = "GetDeviceListAck"
    READ_DEVICE = "ReadDevice"
    READ_DEVICE_ACK = "ReadDeviceAck"
    WRITE_DEVICE = "WriteDevice"
    WRITE_DEVICE_ACK = "WriteDeviceAck"


class DeviceType(StrEnum):
    """Device type codes reported by the hub."""

    WIFI_BRIDGE = "02000001"
    WIFI_BRIDGE_V2 = "02000002"
    RADIO_MOTOR = "10000000"
    WIFI_CURTAIN = "22000000"
    WIFI_TUBULAR_MOTOR = "22000002"
    WIFI_RECEIVER = "22000005"


HUB_DEVICE_TYPES = frozenset({DeviceType.WIFI_BRIDGE, DeviceType.WIFI_BRIDGE_V2})

ACK_TYPES = {
    MessageType.GET_DEVICE_LIST: MessageType.GET_DEVICE_LIST_ACK,
    MessageType.READ_DEVICE: MessageType.READ_DEVICE_ACK,
    MessageType.WRITE_DEVICE: MessageType.WRITE_DEVICE_ACK,
}


class DeviceOpCode(IntEnum):
    """Discrete operation codes."""

    CLOSE = 0
    OPEN = 1
    STOP = 2
    STATUS = 5


class WirelessMode(IntEnum):
    """Radio link capabilities of a motor."""

    UNI_DIRECTIONAL = 0
    BI_DIRECTIONAL = 1
    BI_DIRECTIONAL_LIMITS = 2
    OTHER = 3


# Model number reported in the "type" field of a device status.
DEVICE_MODEL_TDBU = 9

OP_CODES = {
    "close": DeviceOpCode.CLOSE,
    "open": DeviceOpCode.OPEN,
    "stop": DeviceOpCode.STOP,
    "status": DeviceOpCode.STATUS,
}

DEVICE_TYPES = {
    DeviceType.WIFI_BRIDGE: "Wi-Fi Bridge",
    DeviceType.WIFI_BRIDGE_V2: "Wi-Fi Bridge",
    DeviceType.RADIO_MOTOR: "433MHz Radio Motor",
    DeviceType.WIFI_CURTAIN: "Wi-Fi Curtain",
    DeviceType.WIFI_TUBULAR_MOTOR: "Wi-Fi Tubular Motor",
    DeviceType.WIFI_RECEIVER: "Wi-Fi Receiver",
}

DEVICE_MODELS = {
    1: "Roller Blinds",
    2: "Venetian Blinds",
    3: "Roman Blinds",
    4: "Honeycomb Blinds",
    5: "Shangri-La Blinds",
    6: "Roller Shutter",
    7: "Roller Gate",
    8: "Awning",
    9: "TDBU",
    10: "Day & Night Blinds",
    11: "Dimming Blinds",
    12: "Curtain",
    13: "Curtain Left",
    14: "Curtain Right",
}
DEFAULT_DEVICE_MODEL = "Generic Blind"

WIRELESS_MODES = {
    WirelessMode.UNI_DIRECTIONAL: "Uni-Directional",
    WirelessMode.BI_DIRECTIONAL: "Bi-Directional",
    WirelessMode.BI_DIRECTIONAL_LIMITS: "Bi-Directional, Mechanical Limits",
    WirelessMode.OTHER: "Other",
}

VOLTAGE_MODES = {0: "AC Motor", 1: "DC Motor"}

LIMIT_STATES = {
    0: "Not at any limit",
    1: "Top Limit",
    2: "Bottom Limit",
    3: "Limits Detected",
    4: "3rd Limit Detected",
}
