"""
Transport interfaces consumed by the devices and managers.

The USB/HID layer with the Ledger Bitcoin app, and the Trezor bridge, are
external. Implementations plug in by subclassing the ABCs below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.transaction import Coin, MutableTransaction, Transaction

if TYPE_CHECKING:
    from hwsigner.encoders.ledger import LedgerInput

USB_CONNECT = "connect"
USB_DISCONNECT = "disconnect"

# Bridge event channel carrying device events
TREZOR_DEVICE_EVENT = "DEVICE_EVENT"


@dataclass(frozen=True)
class USBDeviceInfo:
    """USB device as reported by the host. ``handle`` changes on re-plug."""

    vendor_id: int
    product_id: int
    serial_number: str
    handle: str


class LedgerApp(ABC):
    """RPC surface of the Ledger Bitcoin app."""

    @abstractmethod
    async def get_public_key(
        self, path: str, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        """Extended public key at ``path``"""

    @abstractmethod
    async def sign_transaction(self, mtx: MutableTransaction, inputs: list[LedgerInput]) -> None:
        """Sign ``mtx`` in place"""

    @abstractmethod
    async def get_transaction_signatures(
        self,
        tx: Transaction,
        view: dict[str, Coin],
        inputs: list[LedgerInput],
    ) -> list[bytes]:
        """DER signatures, one per input"""

    @abstractmethod
    async def sign_message(self, path: str, message: bytes) -> bytes:
        """65-byte compact message signature"""


class LedgerTransport(ABC):
    """One USB connection to a Ledger device."""

    @property
    @abstractmethod
    def device(self) -> USBDeviceInfo:
        """USB device behind this connection"""

    @property
    @abstractmethod
    def opened(self) -> bool:
        """Whether the connection is open"""

    @abstractmethod
    def set_timeout(self, timeout: int) -> None:
        """Per-exchange timeout in milliseconds"""

    @abstractmethod
    async def open(self) -> None:
        """Open the connection"""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection"""

    @abstractmethod
    def app(self, managed: bool, network: Network) -> LedgerApp:
        """
        Bitcoin app client over this connection.

        A managed client opens and closes the connection around each call.
        """


class LedgerUSB(ABC):
    """Host USB layer: device events and device requests."""

    @abstractmethod
    def add_listener(self, event: str, handler: Callable[[USBDeviceInfo], None]) -> None:
        """Subscribe to USB_CONNECT / USB_DISCONNECT"""

    @abstractmethod
    def remove_listener(self, event: str, handler: Callable[[USBDeviceInfo], None]) -> None:
        """Unsubscribe"""

    @abstractmethod
    def from_usb_device(self, info: USBDeviceInfo) -> LedgerTransport:
        """Transport for a connected device"""

    @abstractmethod
    async def request_device(self) -> LedgerTransport:
        """Ask the host for a device (may prompt the user)"""


class TrezorEventType(str, Enum):
    CONNECT = "device-connect"
    CONNECT_UNACQUIRED = "device-connect_unacquired"
    CHANGED = "device-changed"
    DISCONNECT = "device-disconnect"


class TrezorFeatures(BaseModel):
    model_config = ConfigDict(extra="allow")

    device_id: str | None = None


class TrezorDevicePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    path: str
    type: str = "acquired"
    label: str = ""
    status: str | None = None
    features: TrezorFeatures | None = None


class TrezorDeviceEvent(BaseModel):
    type: str
    payload: TrezorDevicePayload


class TrezorResponse(BaseModel):
    """Bridge call result: ``payload`` holds the result or ``error``."""

    success: bool
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def error(self) -> str:
        return str(self.payload.get("error") or "Unknown error without payload.")


class TrezorBridge(ABC):
    """Host-mediated RPC bridge to Trezor devices."""

    # Whether sign_transaction returns raw ``signatures`` in its payload
    supports_raw_signatures: bool = False

    @abstractmethod
    async def init(self, *, popup: bool, debug: bool, manifest: dict[str, str]) -> None:
        """Start the bridge"""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the bridge"""

    @abstractmethod
    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        """Subscribe to TREZOR_DEVICE_EVENT"""

    @abstractmethod
    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        """Unsubscribe"""

    @abstractmethod
    async def get_public_key(self, params: dict[str, Any]) -> TrezorResponse | dict[str, Any]:
        """getPublicKey call"""

    @abstractmethod
    async def sign_transaction(self, params: dict[str, Any]) -> TrezorResponse | dict[str, Any]:
        """signTransaction call"""

    @abstractmethod
    async def sign_message(self, params: dict[str, Any]) -> TrezorResponse | dict[str, Any]:
        """signMessage call"""
