"""
Unified signer over all enabled vendors.

Owns one manager per enabled vendor, re-emits their device events and keeps
at most one device selected across vendors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger as default_logger

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import get_network
from hwsigner.bitcoin.transaction import MutableTransaction, Transaction
from hwsigner.config import SignerConfig
from hwsigner.devices.base import AbstractDevice, InputDataArg
from hwsigner.errors import (
    AlreadyOpenError,
    ConsistencyError,
    NoDeviceSelectedError,
    NotOpenError,
    VendorDisabledError,
    VendorMismatchError,
)
from hwsigner.events import EventEmitter
from hwsigner.managers.base import AbstractDeviceManager, Selector
from hwsigner.managers.ledger import LedgerDeviceManager
from hwsigner.managers.memory import MemoryDeviceManager
from hwsigner.managers.trezor import TrezorDeviceManager
from hwsigner.models import DeviceEvent, Vendor, parse_vendor
from hwsigner.path import PathLike
from hwsigner.transports import LedgerUSB, TrezorBridge

if TYPE_CHECKING:
    from loguru import Logger

# Manager creation order, and the order of get_devices()
VENDOR_ORDER = (Vendor.LEDGER, Vendor.TREZOR, Vendor.MEMORY)


def device_key(device: AbstractDevice) -> str:
    return f"{device.vendor.value}:{device.handle}"


class Signer(EventEmitter):
    """
    Entry point for signing with any supported device.

    Example:
        signer = Signer(SignerConfig(vendor="MEMORY", network="testnet"))
        await signer.open()
        await signer.select_device()
        xpub = await signer.get_xpub("m/84'/1'/0'")
    """

    def __init__(
        self,
        config: SignerConfig | None = None,
        *,
        ledger_usb: LedgerUSB | None = None,
        trezor_bridge: TrezorBridge | None = None,
        selector: Selector | None = None,
        logger: Logger | None = None,
        **overrides: Any,
    ):
        super().__init__()

        config = config or SignerConfig()
        if overrides:
            config = SignerConfig.model_validate({**config.model_dump(), **overrides})

        self.config = config
        self.network = get_network(config.network)
        self.logger = logger if logger is not None else default_logger

        self.opened = False
        self.cached_devices: dict[str, AbstractDevice] = {}
        self.selected: AbstractDevice | None = None
        self.managers: dict[Vendor, AbstractDeviceManager] = {}

        enabled = config.enabled_vendors
        for vendor in VENDOR_ORDER:
            if vendor not in enabled:
                continue

            if vendor == Vendor.LEDGER:
                if ledger_usb is None:
                    raise ConsistencyError("Ledger is enabled but no USB transport was given.")
                manager: AbstractDeviceManager = LedgerDeviceManager(
                    ledger_usb,
                    config.ledger,
                    network=self.network,
                    selector=selector,
                    logger=self.logger,
                )
            elif vendor == Vendor.TREZOR:
                if trezor_bridge is None:
                    raise ConsistencyError("Trezor is enabled but no bridge was given.")
                manager = TrezorDeviceManager(
                    trezor_bridge,
                    config.trezor,
                    network=self.network,
                    selector=selector,
                    logger=self.logger,
                )
            else:
                manager = MemoryDeviceManager(
                    config.memory, network=self.network, selector=selector, logger=self.logger
                )

            self._bind(manager)
            self.managers[vendor] = manager

    def _bind(self, manager: AbstractDeviceManager) -> None:
        manager.on(DeviceEvent.CONNECT, self._handle_connect)
        manager.on(DeviceEvent.DISCONNECT, self._handle_disconnect)
        manager.on(DeviceEvent.SELECT, self._handle_select)
        manager.on(DeviceEvent.DESELECT, self._handle_deselect)

    def _handle_connect(self, device: AbstractDevice) -> None:
        self.cached_devices[device_key(device)] = device
        self.emit(DeviceEvent.CONNECT, device)

    def _handle_disconnect(self, device: AbstractDevice) -> None:
        self.cached_devices.pop(device_key(device), None)
        if self.selected is device:
            self.selected = None
        self.emit(DeviceEvent.DISCONNECT, device)

    def _handle_select(self, device: AbstractDevice) -> None:
        self.selected = device
        self.emit(DeviceEvent.SELECT, device)

    def _handle_deselect(self, device: AbstractDevice) -> None:
        if self.selected is device:
            self.selected = None
        self.emit(DeviceEvent.DESELECT, device)

    @property
    def vendors(self) -> list[Vendor]:
        return list(self.managers)

    def get_manager(self, vendor: str | Vendor) -> AbstractDeviceManager:
        vendor = parse_vendor(vendor)
        manager = self.managers.get(vendor)
        if manager is None:
            raise VendorDisabledError(f"Vendor {vendor.value} is not enabled.")
        return manager

    async def open(self) -> None:
        if self.opened:
            raise AlreadyOpenError()

        opened: list[AbstractDeviceManager] = []
        try:
            for manager in self.managers.values():
                await manager.open()
                opened.append(manager)
        except Exception:
            for manager in opened:
                await manager.close()
            raise

        self.opened = True
        self.logger.debug(f"Signer opened for {', '.join(v.value for v in self.vendors)}")

    async def close(self) -> None:
        if not self.opened:
            raise NotOpenError()

        errors: list[Exception] = []
        for manager in self.managers.values():
            try:
                await manager.close()
            except Exception as e:
                self.logger.error(f"Failed to close {manager.vendor.value} manager: {e}")
                errors.append(e)

        self.selected = None
        self.cached_devices.clear()
        self.opened = False
        self.logger.debug("Signer closed")

        if errors:
            raise errors[0]

    def get_devices(self, vendor: str | Vendor | None = None) -> list[AbstractDevice]:
        if vendor is not None:
            return self.get_manager(vendor).get_devices()
        return list(self.cached_devices.values())

    async def select_device(
        self,
        vendor: str | Vendor | AbstractDevice | None = None,
        device: AbstractDevice | None = None,
    ) -> AbstractDevice:
        """
        Select a device on one vendor, dropping any selection on the others.

        ``vendor`` may be the device itself. Without a vendor the device's own
        vendor is used, or the only enabled one.
        """
        if isinstance(vendor, AbstractDevice):
            vendor, device = None, vendor

        if vendor is None:
            if device is not None:
                vendor = device.vendor
            elif len(self.managers) == 1:
                vendor = next(iter(self.managers))
            else:
                raise ConsistencyError("Vendor is required when more than one is enabled.")

        manager = self.get_manager(vendor)

        if device is not None and device.vendor != manager.vendor:
            raise VendorMismatchError(
                f"Device vendor {device.vendor.value} does not match {manager.vendor.value}."
            )

        if not self.opened:
            raise NotOpenError()

        # The manager replaces a same-vendor selection after checking the device
        if self.selected is not None and self.selected.vendor != manager.vendor:
            await self.deselect_device()
        return await manager.select_device(device)

    async def deselect_device(self) -> bool:
        if self.selected is None:
            return False
        return await self.managers[self.selected.vendor].deselect_device()

    def _get_selected(self) -> AbstractDevice:
        if self.selected is None:
            raise NoDeviceSelectedError()
        return self.selected

    async def get_public_key(
        self, path: PathLike, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        return await self._get_selected().get_public_key(path, include_parent_fingerprint)

    async def get_xpub(self, path: PathLike) -> str:
        return await self._get_selected().get_xpub(path)

    async def sign_transaction(
        self, tx: Transaction, input_data: InputDataArg
    ) -> MutableTransaction:
        return await self._get_selected().sign_transaction(tx, input_data)

    async def get_signatures(self, tx: Transaction, input_data: InputDataArg) -> list[bytes]:
        return await self._get_selected().get_signatures(tx, input_data)

    async def sign_message(self, path: PathLike, message: bytes | str) -> bytes:
        return await self._get_selected().sign_message(path, message)
