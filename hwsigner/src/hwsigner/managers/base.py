"""
Base device manager.

A manager keeps the registry of connected devices for one vendor, tracks the
selected device and emits ``connect``, ``disconnect``, ``select`` and
``deselect`` with the device as the only argument.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from loguru import logger as default_logger

from hwsigner.bitcoin.networks import Network, get_network
from hwsigner.devices.base import AbstractDevice
from hwsigner.errors import (
    AlreadyOpenError,
    DeviceNotFoundError,
    NoDeviceSelectedError,
    NotOpenError,
)
from hwsigner.events import EventEmitter
from hwsigner.models import DeviceEvent, NetworkType, Vendor

if TYPE_CHECKING:
    from loguru import Logger

Selector = Callable[
    [list[AbstractDevice]], AbstractDevice | None | Awaitable[AbstractDevice | None]
]


class AbstractDeviceManager(EventEmitter, ABC):
    """
    Registry of devices for one vendor, keyed by connection handle.

    Event handlers run synchronously and never await while the registry is
    being changed.
    """

    def __init__(
        self,
        network: str | NetworkType | Network = "main",
        selector: Selector | None = None,
        logger: Logger | None = None,
    ):
        super().__init__()
        self.network = get_network(network)
        self.selector = selector
        self.logger = logger if logger is not None else default_logger

        self.opened = False
        self.cached_devices: dict[str, AbstractDevice] = {}
        self.selected: AbstractDevice | None = None

    @property
    @abstractmethod
    def vendor(self) -> Vendor:
        """Vendor of the managed devices"""

    @abstractmethod
    async def _bind(self) -> None:
        """Subscribe to the transport events"""

    @abstractmethod
    async def _unbind(self) -> None:
        """Unsubscribe from the transport events"""

    @abstractmethod
    async def _default_device(self) -> AbstractDevice:
        """Device to select when no device and no selector are given"""

    async def open(self) -> None:
        if self.opened:
            raise AlreadyOpenError()

        await self._bind()
        self.opened = True
        self.logger.debug(f"{self.vendor.value} manager opened")

    async def close(self) -> None:
        if not self.opened:
            raise NotOpenError()

        await self.deselect_device()

        for device in list(self.cached_devices.values()):
            if device.opened:
                await device.close()
            if not device.destroyed:
                device.destroy()

        self.cached_devices.clear()
        await self._unbind()
        self.opened = False
        self.logger.debug(f"{self.vendor.value} manager closed")

    def get_devices(self) -> list[AbstractDevice]:
        return list(self.cached_devices.values())

    async def select_device(self, device: AbstractDevice | None = None) -> AbstractDevice:
        """
        Select ``device``, or pick one with the selector.

        The current selection is dropped first. The device is opened after
        ``select`` is emitted.
        """
        if not self.opened:
            raise NotOpenError()

        if device is None:
            device = await self._choose_device()

        if self.cached_devices.get(device.handle) is not device:
            raise DeviceNotFoundError(f"Device {device.handle} not found.")

        await self.deselect_device()

        self.selected = device
        self.logger.info(f"Selected {self.vendor.value} device {device.key}")
        self.emit(DeviceEvent.SELECT, device)

        if not device.opened:
            await device.open()

        return device

    async def deselect_device(self) -> bool:
        device = self.selected
        if device is None:
            return False

        self.selected = None
        if device.opened:
            await device.close()

        self.logger.info(f"Deselected {self.vendor.value} device {device.key}")
        self.emit(DeviceEvent.DESELECT, device)
        return True

    async def _choose_device(self) -> AbstractDevice:
        if self.selector is None:
            return await self._default_device()

        result = self.selector(self.get_devices())
        if inspect.isawaitable(result):
            result = await result

        if result is None:
            raise NoDeviceSelectedError()
        return result

    def _add_device(self, device: AbstractDevice) -> None:
        self.cached_devices[device.handle] = device
        self.logger.info(f"{self.vendor.value} device connected: {device.key}")
        self.emit(DeviceEvent.CONNECT, device)

    def _remove_device(self, handle: str) -> AbstractDevice | None:
        """Drop the device on ``handle``: deselect, destroy, then emit disconnect."""
        device = self.cached_devices.get(handle)
        if device is None:
            self.logger.warning(f"Disconnect for unknown {self.vendor.value} device {handle}")
            return None

        if self.selected is device:
            self.selected = None
            self.logger.info(f"Deselected {self.vendor.value} device {device.key}")
            self.emit(DeviceEvent.DESELECT, device)

        # No close() here: the transport already lost the unplugged device.
        # A destroyed device always reports opened=False.
        if not device.destroyed:
            device.destroy()

        del self.cached_devices[handle]
        self.logger.info(f"{self.vendor.value} device disconnected: {device.key}")
        self.emit(DeviceEvent.DISCONNECT, device)
        return device
