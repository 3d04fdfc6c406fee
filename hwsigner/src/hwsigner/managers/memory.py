"""
Manager for in-memory software signers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hwsigner.bitcoin.networks import Network
from hwsigner.config import MemoryOptions
from hwsigner.devices.base import AbstractDevice
from hwsigner.devices.memory import MemoryDevice
from hwsigner.errors import ConsistencyError, DeviceNotFoundError
from hwsigner.managers.base import AbstractDeviceManager, Selector
from hwsigner.models import DeviceEvent, NetworkType, Vendor

if TYPE_CHECKING:
    from loguru import Logger


class MemoryDeviceManager(AbstractDeviceManager):
    """
    Software devices added and removed by the caller.

    ``open()`` creates the device described by the options, then emits
    ``connect`` for every registered device.
    """

    def __init__(
        self,
        options: MemoryOptions | None = None,
        *,
        network: str | NetworkType | Network = "main",
        selector: Selector | None = None,
        logger: Logger | None = None,
    ):
        super().__init__(network, selector, logger)
        self.options = options or MemoryOptions()

    @property
    def vendor(self) -> Vendor:
        return Vendor.MEMORY

    def create_device(self) -> MemoryDevice:
        seed = bytes.fromhex(self.options.seed_hex) if self.options.seed_hex else None
        return MemoryDevice(
            mnemonic=self.options.mnemonic,
            passphrase=self.options.passphrase,
            seed=seed,
            network=self.network,
            logger=self.logger,
        )

    async def _bind(self) -> None:
        initial = self.create_device()
        self.cached_devices = {initial.handle: initial, **self.cached_devices}

        for device in self.get_devices():
            self.logger.info(f"MEMORY device connected: {device.key}")
            self.emit(DeviceEvent.CONNECT, device)

    async def _unbind(self) -> None:
        pass

    def add_device(self, device: MemoryDevice) -> None:
        """Register ``device``. Emits ``connect`` right away if the manager is open."""
        if device.handle in self.cached_devices:
            raise ConsistencyError(f"Device {device.handle} is already added.")

        if self.opened:
            self._add_device(device)
        else:
            self.cached_devices[device.handle] = device

    def remove_device(self, device: AbstractDevice) -> None:
        if self.cached_devices.get(device.handle) is not device:
            raise DeviceNotFoundError(f"Device {device.handle} not found.")

        if self.opened:
            self._remove_device(device.handle)
        else:
            del self.cached_devices[device.handle]

    async def _default_device(self) -> AbstractDevice:
        devices = self.get_devices()
        if not devices:
            raise DeviceNotFoundError("No memory devices added.")
        return devices[0]
