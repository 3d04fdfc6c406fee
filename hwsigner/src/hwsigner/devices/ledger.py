"""
Ledger device over USB.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.script import is_signature_encoding
from hwsigner.bitcoin.transaction import MutableTransaction, Transaction, to_immutable
from hwsigner.constants import DEFAULT_LEDGER_TIMEOUT, SIGHASH_ALL
from hwsigner.devices.base import AbstractDevice, InputDataArg
from hwsigner.encoders.ledger import create_ledger_inputs
from hwsigner.errors import ConsistencyError
from hwsigner.inputdata import prepare_sign_options
from hwsigner.models import NetworkType, Vendor
from hwsigner.multisig import apply_other_signatures
from hwsigner.path import PathLike, parse_path
from hwsigner.transports import LedgerApp, LedgerTransport, USBDeviceInfo

if TYPE_CHECKING:
    from loguru import Logger


class LedgerDevice(AbstractDevice):
    """
    Ledger device on one USB connection.

    In managed mode the app client owns the connection and open/close are
    no-ops.
    """

    def __init__(
        self,
        transport: LedgerTransport,
        *,
        network: str | NetworkType | Network = "main",
        managed: bool = True,
        timeout: int = DEFAULT_LEDGER_TIMEOUT,
        logger: Logger | None = None,
    ):
        super().__init__(network, logger)
        self.transport = transport
        self.managed = managed
        self.timeout = timeout

        self.transport.set_timeout(timeout)
        self.app: LedgerApp | None = transport.app(managed, self.network)

    @property
    def vendor(self) -> Vendor:
        return Vendor.LEDGER

    @property
    def usb_device(self) -> USBDeviceInfo:
        return self.transport.device

    @property
    def handle(self) -> str:
        return self.usb_device.handle

    @property
    def key(self) -> str:
        device = self.usb_device
        return f"{device.vendor_id}:{device.product_id}:{device.serial_number}"

    @property
    def opened(self) -> bool:
        return not self.destroyed and self.transport.opened

    async def open(self) -> None:
        self.check_alive()

        if self.managed:
            return

        if self.opened:
            raise ConsistencyError("Device is already open.")
        await self.transport.open()

    async def close(self) -> None:
        self.check_alive()

        if self.managed:
            return

        if not self.opened:
            raise ConsistencyError("Device is not open.")
        await self.transport.close()

    def destroy(self) -> None:
        super().destroy()
        self.app = None

    def _get_app(self) -> LedgerApp:
        self.check_alive()
        if self.app is None:
            raise ConsistencyError("Ledger app not found.")
        return self.app

    async def get_public_key(
        self, path: PathLike, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        app = self._get_app()
        path = parse_path(path)

        self.logger.debug(f"Getting public key for path {path}")
        return await app.get_public_key(path.to_str(), include_parent_fingerprint)

    async def sign_transaction(
        self, tx: Transaction, input_data: InputDataArg
    ) -> MutableTransaction:
        app = self._get_app()

        input_map = prepare_sign_options(input_data)
        ledger_inputs = create_ledger_inputs(tx, input_map, self.network)

        mtx = MutableTransaction.from_tx(tx)
        for data in input_map.values():
            mtx.add_coin(data.prevout, data.coin)

        await app.sign_transaction(mtx, ledger_inputs)
        self.check_alive()
        self.logger.debug("Transaction was signed")

        return apply_other_signatures(mtx, input_map, self.network)

    async def get_signatures(self, tx: Transaction, input_data: InputDataArg) -> list[bytes]:
        app = self._get_app()

        input_map = prepare_sign_options(input_data)
        view = {key: data.coin for key, data in input_map.items()}
        ledger_inputs = create_ledger_inputs(tx, input_map, self.network)

        signatures = await app.get_transaction_signatures(to_immutable(tx), view, ledger_inputs)
        self.check_alive()
        self.logger.debug("Transaction was signed")

        result = []
        for signature in signatures:
            if not (is_signature_encoding(signature) and signature[-1] == SIGHASH_ALL):
                signature = signature + bytes([SIGHASH_ALL])
            result.append(signature)
        return result

    async def sign_message(self, path: PathLike, message: bytes | str) -> bytes:
        app = self._get_app()
        path = parse_path(path)

        if isinstance(message, str):
            message = message.encode("utf-8")

        self.logger.debug(f"Signing message using path {path}")
        return await app.sign_message(path.to_str(), message)
