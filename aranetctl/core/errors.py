"""Domain-specific errors for aranetctl."""

PAIRING_GUIDANCE = """Device pairing required. The device will display a PIN code.

When you run this command, your system should show a pairing dialog.
Enter the PIN code displayed on your Aranet device screen.

If no dialog appears:
1. Make sure the device is showing the PIN (it may time out)
2. Try running the command again
3. The PIN is usually a 6-digit number like 122867"""


class AranetError(Exception):
    """Base error for aranetctl."""

    default_message = "Aranet operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class ConfigError(AranetError):
    """Raised when the packaged catalog or user settings cannot be loaded."""

    default_message = "Invalid configuration"


class AdapterError(AranetError):
    """Base for Bluetooth adapter precondition failures."""


class AdapterUnavailable(AdapterError):
    default_message = "Bluetooth is unavailable or not ready"


class AdapterUnauthorized(AdapterError):
    default_message = "Bluetooth access is not authorized. Grant Bluetooth permissions and retry."


class AdapterUnsupported(AdapterError):
    default_message = "Bluetooth Low Energy is not supported on this system"


class DeviceNotFound(AranetError):
    default_message = "Device not found"


class ConnectionFailed(AranetError):
    default_message = "Failed to connect to device"


class ReadFailed(AranetError):
    default_message = "Failed to read characteristic"


class InvalidData(AranetError):
    default_message = "Invalid data received"


class UnsupportedDevice(InvalidData):
    """Raised for device families that are recognized but cannot be decoded."""

    default_message = "Device type is not supported"


class OperationTimeout(AranetError):
    default_message = "Operation timed out"


class PairingRequired(AranetError):
    """Raised when authentication failures leave no usable reading payload."""

    default_message = PAIRING_GUIDANCE
