"""Project-specific exception types."""

from __future__ import annotations


class USBPassError(RuntimeError):
    """Base error for domain-level usbpass failures."""

    code = 'USBPASS_ERROR'
    status = 500

    def details(self) -> dict:
        return {}


class ConfigError(USBPassError):
    """Raised for fatal startup configuration problems."""

    code = 'CONFIG_ERROR'


class InvalidIdentity(USBPassError):
    """Raised when a vendor/product id is not exactly 4 hex digits."""

    code = 'INVALID_IDENTITY'
    status = 400


class InvalidVMName(USBPassError):
    """Raised when a VM name is empty or fails the name format."""

    code = 'INVALID_VM_NAME'
    status = 400


class VMNotRunning(USBPassError):
    """Raised when a well-formed VM name is not in the running set."""

    code = 'VM_NOT_RUNNING'
    status = 400


class EnumerationFailed(USBPassError):
    """Raised when an enumeration command fails or cannot be started."""

    code = 'ENUMERATION_FAILED'


class MalformedDocument(USBPassError):
    """Raised when a configuration dump is not well-formed XML."""

    code = 'MALFORMED_DOCUMENT'


class PersistenceFailed(USBPassError):
    """Raised when the favorites store reports an error."""

    code = 'PERSISTENCE_FAILED'


class OperationFailed(USBPassError):
    """Raised when attach/detach exits non-zero; keeps the raw output."""

    code = 'OPERATION_FAILED'

    def __init__(self, message: str, output: str = ''):
        super().__init__(message)
        self.output = output

    def details(self) -> dict:
        return {'output': self.output}
