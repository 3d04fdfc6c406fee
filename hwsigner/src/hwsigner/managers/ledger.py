"""
Ledger device manager driven by USB connect/disconnect events.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hwsigner.bitcoin.networks import Network
from hwsigner.config import LedgerOptions
from hwsigner.devices.ledger import LedgerDevice
from hwsigner.managers.base import AbstractDeviceManager, Selector
from hwsigner.models import NetworkType, Vendor
from hwsigner.transports import (
    USB_CONNECT,
    USB_DISCONNECT,
    LedgerTransport,
    LedgerUSB,
    USBDeviceInfo,
)

if TYPE_CHECKING:
    from loguru import Logger


class LedgerDeviceManager(AbstractDeviceManager):
    def __init__(
        self,
        usb: LedgerUSB,
        options: LedgerOptions | None = None,
        *,
        network: str | NetworkType | Network = "main",
        selector: Selector | None = None,
        logger: Logger | None = None,
    ):
        super().__init__(network, selector, logger)
        self.usb = usb
        self.options = options or LedgerOptions()

    @property
    def vendor(self) -> Vendor:
        return Vendor.LEDGER

    async def _bind(self) -> None:
        self.usb.add_listener(USB_CONNECT, self._handle_connect)
        self.usb.add_listener(USB_DISCONNECT, self._handle_disconnect)

    async def _unbind(self) -> None:
        self.usb.remove_listener(USB_CONNECT, self._handle_connect)
        self.usb.remove_listener(USB_DISCONNECT, self._handle_disconnect)

    def _create_device(self, transport: LedgerTransport) -> LedgerDevice:
        return LedgerDevice(
            transport,
            network=self.network,
            managed=self.options.managed,
            timeout=self.options.timeout,
            logger=self.logger,
        )

    def _handle_connect(self, info: USBDeviceInfo) -> None:
        if info.handle in self.cached_devices:
            self.logger.warning(f"Ledger device {info.handle} is already connected, ignoring")
            return

        self._add_device(self._create_device(self.usb.from_usb_device(info)))

    def _handle_disconnect(self, info: USBDeviceInfo) -> None:
        self._remove_device(info.handle)

    async def _default_device(self) -> LedgerDevice:
        transport = await self.usb.request_device()
        handle = transport.device.handle

        device = self.cached_devices.get(handle)
        if device is not None:
            return device

        device = self._create_device(transport)
        self._add_device(device)
        return device
