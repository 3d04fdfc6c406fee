"""
Trezor device behind the bridge.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.script import is_signature_encoding
from hwsigner.bitcoin.transaction import MutableTransaction, Transaction, TransactionError
from hwsigner.constants import SIGHASH_ALL
from hwsigner.devices.base import AbstractDevice, InputDataArg
from hwsigner.encoders.trezor import create_trezor_inputs, get_coin_name
from hwsigner.errors import SignerError, UnsupportedError
from hwsigner.inputdata import prepare_sign_options
from hwsigner.models import NetworkType, Vendor
from hwsigner.path import PathLike, parse_path
from hwsigner.transports import TrezorBridge, TrezorResponse

if TYPE_CHECKING:
    from loguru import Logger


class TrezorDevice(AbstractDevice):
    """
    Trezor device addressed by its bridge path.

    The bridge owns the connection, so open/close only check that the device
    is still available.
    """

    def __init__(
        self,
        bridge: TrezorBridge,
        *,
        path: str,
        device_id: str,
        label: str = "",
        status: str | None = None,
        network: str | NetworkType | Network = "main",
        logger: Logger | None = None,
    ):
        super().__init__(network, logger)
        self.bridge = bridge
        self.path = path
        self.device_id = device_id
        self.label = label
        self.status = status

    @property
    def vendor(self) -> Vendor:
        return Vendor.TREZOR

    @property
    def handle(self) -> str:
        return self.path

    @property
    def key(self) -> str:
        return self.device_id

    @property
    def opened(self) -> bool:
        return not self.destroyed

    async def open(self) -> None:
        self.check_alive()

    async def close(self) -> None:
        self.check_alive()

    def _params(self, **params: Any) -> dict[str, Any]:
        return {"device": {"path": self.handle}, "coin": get_coin_name(self.network), **params}

    async def _call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        raw = await getattr(self.bridge, method)(params)
        self.check_alive()

        response = raw if isinstance(raw, TrezorResponse) else TrezorResponse.model_validate(raw)
        if not response.success:
            context = {"method": method, "device": self.handle}
            raise SignerError(Vendor.TREZOR.value, response.error, context)

        return response.payload

    async def get_public_key(
        self, path: PathLike, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        self.check_alive()
        path = parse_path(path)

        self.logger.debug(f"Getting public key for path {path}")
        payload = await self._call("get_public_key", self._params(path=path.to_str()))

        parent_fingerprint = payload.get("fingerprint") if include_parent_fingerprint else None

        return HDPublicKey(
            public_key=bytes.fromhex(payload["publicKey"]),
            chain_code=bytes.fromhex(payload["chainCode"]),
            depth=int(payload["depth"]),
            child_index=int(payload["childNum"]),
            parent_fingerprint=parent_fingerprint,
        )

    async def sign_transaction(
        self, tx: Transaction, input_data: InputDataArg
    ) -> MutableTransaction:
        self.check_alive()
        self.logger.debug("Sign transaction")

        input_map = prepare_sign_options(input_data)
        request = create_trezor_inputs(tx, input_map, self.network)

        payload = await self._call("sign_transaction", self._params(**request))

        try:
            mtx = MutableTransaction.from_hex(payload["serializedTx"])
        except (KeyError, TransactionError) as e:
            raise SignerError(Vendor.TREZOR.value, f"Invalid signed transaction: {e}") from e

        # Coins do not survive the round trip through raw bytes
        for data in input_map.values():
            mtx.add_coin(data.prevout, data.coin)

        return mtx

    async def get_signatures(self, tx: Transaction, input_data: InputDataArg) -> list[bytes]:
        self.check_alive()

        if not self.bridge.supports_raw_signatures:
            raise UnsupportedError("Trezor bridge does not return raw signatures.")

        self.logger.debug("Getting signatures for transaction")

        input_map = prepare_sign_options(input_data)
        request = create_trezor_inputs(tx, input_map, self.network)

        payload = await self._call("sign_transaction", self._params(**request))

        signatures = []
        for sig in payload["signatures"]:
            signature = bytes.fromhex(sig)
            if not (is_signature_encoding(signature) and signature[-1] == SIGHASH_ALL):
                signature += bytes([SIGHASH_ALL])
            signatures.append(signature)

        return signatures

    async def sign_message(self, path: PathLike, message: bytes | str) -> bytes:
        self.check_alive()
        path = parse_path(path)

        if isinstance(message, str):
            message = message.encode("utf-8")

        self.logger.debug(f"Signing message using path {path}")
        payload = await self._call(
            "sign_message",
            self._params(path=path.to_list(), message=message.hex(), hex=True),
        )

        return base64.b64decode(payload["signature"])
