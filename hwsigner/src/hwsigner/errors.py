"""
Error kinds raised by the signer.

Every error carries a ``code`` tag so callers can tell kinds apart without
matching on messages.
"""

from __future__ import annotations

from typing import Any


class HWSignerError(Exception):
    """Base class for all signer errors."""

    code = "HWSIGNER_ERROR"


class MalformedPathError(HWSignerError):
    code = "MALFORMED_PATH"


class DeviceDestroyedError(HWSignerError):
    code = "DEVICE_DESTROYED"

    def __init__(self, message: str = "Device no longer available.") -> None:
        super().__init__(message)


class NotOpenError(HWSignerError):
    code = "NOT_OPEN"

    def __init__(self, message: str = "Not open.") -> None:
        super().__init__(message)


class AlreadyOpenError(HWSignerError):
    code = "ALREADY_OPEN"

    def __init__(self, message: str = "Already opened.") -> None:
        super().__init__(message)


class NoDeviceSelectedError(HWSignerError):
    code = "NO_DEVICE_SELECTED"

    def __init__(self, message: str = "Device was not selected.") -> None:
        super().__init__(message)


class DeviceNotFoundError(HWSignerError):
    code = "DEVICE_NOT_FOUND"


class VendorMismatchError(HWSignerError):
    code = "VENDOR_MISMATCH"


class VendorDisabledError(HWSignerError):
    code = "VENDOR_DISABLED"


class UnsupportedError(HWSignerError):
    """Input archetype or output type the signers can not handle."""

    code = "UNSUPPORTED"


class ExternalInputError(HWSignerError):
    """Input without signing metadata (path and coin)."""

    code = "EXTERNAL_INPUT"


class AmbiguousNestingError(HWSignerError):
    """Nested segwit program in scriptSig but the witness stack is empty."""

    code = "AMBIGUOUS_NESTING"


class ConsistencyError(HWSignerError):
    code = "CONSISTENCY"


class SignerError(HWSignerError):
    """
    The device or bridge rejected a request.

    Attributes:
        vendor: Vendor that produced the error
        message: Error string reported by the vendor
        context: Request that failed (RPC method and parameters worth logging)
    """

    code = "SIGNER"

    def __init__(self, vendor: str, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(f"{vendor}: {message}")
        self.vendor = vendor
        self.message = message
        self.context = context or {}
