"""
Test configuration for hwsigner tests.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from hwsigner.bitcoin.bip32 import HDKey, mnemonic_to_seed
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.script import pubkey_to_p2pkh_script, pubkey_to_p2wpkh_script
from hwsigner.bitcoin.transaction import Outpoint, Transaction, TxInput, TxOutput
from hwsigner.transports import (
    TREZOR_DEVICE_EVENT,
    USB_CONNECT,
    USB_DISCONNECT,
    LedgerApp,
    LedgerTransport,
    LedgerUSB,
    TrezorBridge,
    TrezorResponse,
    USBDeviceInfo,
)

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


class FakeLedgerTransport(LedgerTransport):
    """USB connection to a fake Ledger; the app is a spec'd mock."""

    def __init__(self, info: USBDeviceInfo):
        self._device = info
        self._opened = False
        self.timeout: int | None = None
        self.managed: bool | None = None
        self.ledger_app = MagicMock(spec=LedgerApp)

    @property
    def device(self) -> USBDeviceInfo:
        return self._device

    @property
    def opened(self) -> bool:
        return self._opened

    def set_timeout(self, timeout: int) -> None:
        self.timeout = timeout

    async def open(self) -> None:
        self._opened = True

    async def close(self) -> None:
        self._opened = False

    def app(self, managed: bool, network: Network) -> LedgerApp:
        self.managed = managed
        return self.ledger_app


class FakeUSB(LedgerUSB):
    def __init__(self) -> None:
        self.listeners: dict[str, list[Callable[[USBDeviceInfo], None]]] = {
            USB_CONNECT: [],
            USB_DISCONNECT: [],
        }
        self.transports: dict[str, FakeLedgerTransport] = {}
        self.requested: USBDeviceInfo | None = None

    def add_listener(self, event: str, handler: Callable[[USBDeviceInfo], None]) -> None:
        self.listeners[event].append(handler)

    def remove_listener(self, event: str, handler: Callable[[USBDeviceInfo], None]) -> None:
        self.listeners[event].remove(handler)

    def from_usb_device(self, info: USBDeviceInfo) -> FakeLedgerTransport:
        transport = FakeLedgerTransport(info)
        self.transports[info.handle] = transport
        return transport

    async def request_device(self) -> FakeLedgerTransport:
        assert self.requested is not None
        return self.from_usb_device(self.requested)

    def connect(self, info: USBDeviceInfo) -> None:
        for handler in list(self.listeners[USB_CONNECT]):
            handler(info)

    def disconnect(self, info: USBDeviceInfo) -> None:
        for handler in list(self.listeners[USB_DISCONNECT]):
            handler(info)


class FakeBridge(TrezorBridge):
    """Trezor bridge answering from ``responses`` and recording every call."""

    def __init__(self) -> None:
        self.handlers: list[Callable[[Any], None]] = []
        self.init_kwargs: dict[str, Any] | None = None
        self.stopped = False
        self.responses: dict[str, TrezorResponse | dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def init(self, *, popup: bool, debug: bool, manifest: dict[str, str]) -> None:
        self.init_kwargs = {"popup": popup, "debug": debug, "manifest": manifest}

    async def stop(self) -> None:
        self.stopped = True

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        assert event == TREZOR_DEVICE_EVENT
        self.handlers.append(handler)

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers.remove(handler)

    async def _respond(self, method: str, params: dict[str, Any]) -> Any:
        self.calls.append((method, params))
        return self.responses[method]

    async def get_public_key(self, params: dict[str, Any]) -> Any:
        return await self._respond("get_public_key", params)

    async def sign_transaction(self, params: dict[str, Any]) -> Any:
        return await self._respond("sign_transaction", params)

    async def sign_message(self, params: dict[str, Any]) -> Any:
        return await self._respond("sign_message", params)

    def emit(
        self,
        event_type: str,
        path: str,
        device_id: str | None = "device-1",
        label: str = "My Trezor",
        acquired: bool = True,
    ) -> None:
        payload: dict[str, Any] = {
            "path": path,
            "type": "acquired" if acquired else "unacquired",
            "label": label,
        }
        if device_id is not None:
            payload["features"] = {"device_id": device_id}

        for handler in list(self.handlers):
            handler({"type": event_type, "payload": payload})


def usb_info(handle: str, serial: str = "0001") -> USBDeviceInfo:
    return USBDeviceInfo(vendor_id=0x2C97, product_id=0x0001, serial_number=serial, handle=handle)


def funding_tx(script: bytes, value: int = 100_000, tag: int = 0x11) -> Transaction:
    """Transaction paying ``value`` to ``script`` at output 0."""
    return Transaction(
        inputs=[TxInput(Outpoint(bytes([tag]).hex() * 32, 0))],
        outputs=[TxOutput(value, script)],
    )


def spending_tx(*prev_txs: Transaction, fee: int = 1_000) -> Transaction:
    """Transaction spending output 0 of each of ``prev_txs`` to one P2WPKH output."""
    total = sum(tx.outputs[0].value for tx in prev_txs)
    return Transaction(
        inputs=[TxInput(Outpoint(tx.txid(), 0)) for tx in prev_txs],
        outputs=[TxOutput(total - fee, bytes([0x00, 0x14]) + bytes(20))],
    )


@pytest.fixture
def sample_mnemonic() -> str:
    """Test mnemonic (not for production use!)."""
    return TEST_MNEMONIC


@pytest.fixture
def master_key(sample_mnemonic: str) -> HDKey:
    return HDKey.from_seed(mnemonic_to_seed(sample_mnemonic))


@pytest.fixture
def p2wpkh_key(master_key: HDKey) -> HDKey:
    return master_key.derive("m/84'/0'/0'/0/0")


@pytest.fixture
def p2pkh_key(master_key: HDKey) -> HDKey:
    return master_key.derive("m/44'/0'/0'/0/0")


@pytest.fixture
def p2wpkh_script(p2wpkh_key: HDKey) -> bytes:
    return pubkey_to_p2wpkh_script(p2wpkh_key.get_public_key_bytes())


@pytest.fixture
def p2pkh_script(p2pkh_key: HDKey) -> bytes:
    return pubkey_to_p2pkh_script(p2pkh_key.get_public_key_bytes())


@pytest.fixture
def usb() -> FakeUSB:
    return FakeUSB()


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()
