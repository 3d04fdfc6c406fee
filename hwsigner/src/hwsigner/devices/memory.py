"""
Software signer holding a BIP32 master key in memory.

Used for tests and scripting. Signs P2PKH, P2WPKH, nested P2WPKH and
P2SH / P2WSH / nested P2WSH multisig inputs.
"""

from __future__ import annotations

import itertools
import secrets
from typing import TYPE_CHECKING

from hwsigner.bitcoin.bip32 import HDKey, HDPublicKey, mnemonic_to_seed
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.script import (
    pubkey_to_p2pkh_script,
    pubkey_to_p2wpkh_script,
    script_to_p2sh_script,
)
from hwsigner.bitcoin.signing import (
    compute_sighash_legacy,
    compute_sighash_segwit,
    sign_hash,
    sign_message_compact,
)
from hwsigner.bitcoin.transaction import MutableTransaction, Transaction
from hwsigner.classifier import InputArchetype, classify_input
from hwsigner.devices.base import AbstractDevice, InputDataArg
from hwsigner.errors import ConsistencyError, NotOpenError, UnsupportedError
from hwsigner.inputdata import InputData, get_input_data, prepare_sign_options
from hwsigner.models import NetworkType, Vendor
from hwsigner.multisig import (
    KeyRing,
    apply_other_signatures,
    apply_signature,
    create_ring,
    template_input,
)
from hwsigner.path import PathLike, parse_path

if TYPE_CHECKING:
    from loguru import Logger

_ids = itertools.count()


class MemoryDevice(AbstractDevice):
    def __init__(
        self,
        *,
        mnemonic: str | None = None,
        passphrase: str = "",
        seed: bytes | None = None,
        master: HDKey | None = None,
        network: str | NetworkType | Network = "main",
        logger: Logger | None = None,
    ):
        super().__init__(network, logger)

        if master is None:
            if mnemonic is not None:
                seed = mnemonic_to_seed(mnemonic, passphrase)
            elif seed is None:
                seed = secrets.token_bytes(32)
            master = HDKey.from_seed(seed)

        self.master = master
        self.id = next(_ids)
        self._opened = False

    @property
    def vendor(self) -> Vendor:
        return Vendor.MEMORY

    @property
    def handle(self) -> str:
        return str(self.id)

    @property
    def key(self) -> str:
        return f"{self.master.fingerprint:08x}"

    @property
    def opened(self) -> bool:
        return self._opened and not self.destroyed

    async def open(self) -> None:
        self.check_alive()
        if self._opened:
            raise ConsistencyError("Device is already open.")
        self._opened = True

    async def close(self) -> None:
        self.check_alive()
        if not self._opened:
            raise ConsistencyError("Device is not open.")
        self._opened = False

    def destroy(self) -> None:
        super().destroy()
        self._opened = False

    def _check_open(self) -> None:
        self.check_alive()
        if not self._opened:
            raise NotOpenError("Device is not open.")

    async def get_public_key(
        self, path: PathLike, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        self._check_open()

        hdkey = self.master.derive(parse_path(path)).to_public()
        if not include_parent_fingerprint:
            hdkey.parent_fingerprint = None
        return hdkey

    def _ring(self, data: InputData) -> KeyRing:
        key = self.master.derive(data.path)
        return create_ring(data, key.get_public_key_bytes(), self.network, key.private_key)

    def _sign_input(self, tx: Transaction, index: int, data: InputData, ring: KeyRing) -> bytes:
        """DER signature + SIGHASH_ALL for input ``index``."""
        if ring.private_key is None:
            raise ConsistencyError("Ring has no private key.")

        coin = data.coin
        archetype = classify_input(
            coin, data.witness, redeem=ring.script or data.redeem, multisig=ring.script is not None
        )

        if archetype == InputArchetype.PUBKEYHASH:
            if coin.script != pubkey_to_p2pkh_script(ring.public_key):
                raise ConsistencyError(f"Key at {data.path} does not match input {index}.")
            sighash = compute_sighash_legacy(tx, index, coin.script)

        elif archetype in (InputArchetype.WITNESSPUBKEYHASH, InputArchetype.NESTED_P2WPKH):
            expected = pubkey_to_p2wpkh_script(ring.public_key)
            if archetype == InputArchetype.NESTED_P2WPKH:
                expected = script_to_p2sh_script(expected)
            if coin.script != expected:
                raise ConsistencyError(f"Key at {data.path} does not match input {index}.")
            script_code = pubkey_to_p2pkh_script(ring.public_key)
            sighash = compute_sighash_segwit(tx, index, script_code, coin.value)

        elif archetype == InputArchetype.SCRIPTHASH:
            if ring.script is None:
                raise UnsupportedError("P2SH inputs without multisig data are not supported.")
            sighash = compute_sighash_legacy(tx, index, ring.script)

        elif archetype in (InputArchetype.WITNESSSCRIPTHASH, InputArchetype.NESTED_P2WSH):
            if ring.script is None:
                raise UnsupportedError("P2WSH inputs without multisig data are not supported.")
            sighash = compute_sighash_segwit(tx, index, ring.script, coin.value)

        else:
            raise UnsupportedError(f"{archetype.value} inputs are not supported.")

        return sign_hash(sighash, ring.private_key)

    async def sign_transaction(
        self, tx: Transaction, input_data: InputDataArg
    ) -> MutableTransaction:
        self._check_open()

        input_map = prepare_sign_options(input_data)
        mtx = MutableTransaction.from_tx(tx)
        for data in input_map.values():
            mtx.add_coin(data.prevout, data.coin)

        for i, data in enumerate(get_input_data(mtx, input_map)):
            ring = self._ring(data)
            signature = self._sign_input(mtx, i, data, ring)

            template_input(mtx, i, ring)
            if not apply_signature(mtx, i, ring, signature):
                raise ConsistencyError(f"Could not apply signature to input {i}.")

        self.logger.debug(f"Signed {len(mtx.inputs)} inputs")
        return apply_other_signatures(mtx, input_map, self.network)

    async def get_signatures(self, tx: Transaction, input_data: InputDataArg) -> list[bytes]:
        self._check_open()

        input_map = prepare_sign_options(input_data)

        return [
            self._sign_input(tx, i, data, self._ring(data))
            for i, data in enumerate(get_input_data(tx, input_map))
        ]

    async def sign_message(self, path: PathLike, message: bytes | str) -> bytes:
        self._check_open()

        key = self.master.derive(parse_path(path))
        return sign_message_compact(message, key.private_key)
