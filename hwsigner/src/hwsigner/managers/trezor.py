"""
Trezor device manager driven by bridge device events.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from hwsigner.bitcoin.networks import Network
from hwsigner.config import TrezorOptions
from hwsigner.devices.trezor import TrezorDevice
from hwsigner.errors import DeviceNotFoundError
from hwsigner.managers.base import AbstractDeviceManager, Selector
from hwsigner.models import NetworkType, Vendor
from hwsigner.transports import (
    TREZOR_DEVICE_EVENT,
    TrezorBridge,
    TrezorDeviceEvent,
    TrezorDevicePayload,
    TrezorEventType,
)

if TYPE_CHECKING:
    from loguru import Logger


class TrezorDeviceManager(AbstractDeviceManager):
    """
    Devices reported by the Trezor bridge, keyed by bridge path.

    Only acquired devices are registered. ``select_device()`` without a device
    or selector picks the first connected one.
    """

    def __init__(
        self,
        bridge: TrezorBridge,
        options: TrezorOptions | None = None,
        *,
        network: str | NetworkType | Network = "main",
        selector: Selector | None = None,
        logger: Logger | None = None,
    ):
        super().__init__(network, selector, logger)
        self.bridge = bridge
        self.options = options or TrezorOptions()

    @property
    def vendor(self) -> Vendor:
        return Vendor.TREZOR

    async def _bind(self) -> None:
        self.bridge.on(TREZOR_DEVICE_EVENT, self._handle_event)

        manifest = {
            "email": self.options.manifest_email,
            "appUrl": self.options.manifest_app_url,
        }
        try:
            await self.bridge.init(popup=False, debug=self.options.debug, manifest=manifest)
        except Exception:
            self.bridge.off(TREZOR_DEVICE_EVENT, self._handle_event)
            raise

    async def _unbind(self) -> None:
        self.bridge.off(TREZOR_DEVICE_EVENT, self._handle_event)
        await self.bridge.stop()

    def _handle_event(self, event: TrezorDeviceEvent | dict[str, Any]) -> None:
        try:
            if not isinstance(event, TrezorDeviceEvent):
                event = TrezorDeviceEvent.model_validate(event)
        except ValidationError as e:
            self.logger.warning(f"Ignoring malformed Trezor device event: {e}")
            return

        payload = event.payload

        if event.type == TrezorEventType.CONNECT:
            self._handle_connect(payload)
        elif event.type == TrezorEventType.DISCONNECT:
            self._remove_device(payload.path)
        elif event.type == TrezorEventType.CHANGED:
            self._handle_changed(payload)
        elif event.type == TrezorEventType.CONNECT_UNACQUIRED:
            self.logger.debug(f"Ignoring unacquired Trezor device {payload.path}")
        else:
            self.logger.debug(f"Ignoring Trezor event {event.type}")

    def _handle_connect(self, payload: TrezorDevicePayload) -> None:
        if payload.type != "acquired":
            self.logger.debug(f"Ignoring {payload.type} Trezor device {payload.path}")
            return

        if payload.path in self.cached_devices:
            self.logger.warning(f"Trezor device {payload.path} is already connected, ignoring")
            return

        device_id = payload.features.device_id if payload.features else None
        if not device_id:
            self.logger.warning(f"Trezor device {payload.path} reported no device_id, ignoring")
            return

        device = TrezorDevice(
            self.bridge,
            path=payload.path,
            device_id=device_id,
            label=payload.label,
            status=payload.status,
            network=self.network,
            logger=self.logger,
        )
        self._add_device(device)

    def _handle_changed(self, payload: TrezorDevicePayload) -> None:
        device = self.cached_devices.get(payload.path)
        if not isinstance(device, TrezorDevice):
            self.logger.debug(f"Change for unknown Trezor device {payload.path}")
            return

        device.label = payload.label
        device.status = payload.status

    async def _default_device(self) -> TrezorDevice:
        devices = self.get_devices()
        if not devices:
            raise DeviceNotFoundError("No Trezor devices connected.")
        return devices[0]
