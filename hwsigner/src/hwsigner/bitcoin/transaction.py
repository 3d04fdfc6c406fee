"""
Transaction model, serialization and parsing.
"""

from __future__ import annotations

import copy
import hashlib
import struct
from dataclasses import dataclass, field

from hwsigner.bitcoin.script import ScriptType, get_script_type
from hwsigner.constants import DEFAULT_SEQUENCE


class TransactionError(Exception):
    pass


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Read a varint, returning (value, new_offset)."""
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        return struct.unpack("<H", data[offset : offset + 2])[0], offset + 2
    if first == 0xFE:
        return struct.unpack("<I", data[offset : offset + 4])[0], offset + 4
    return struct.unpack("<Q", data[offset : offset + 8])[0], offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def encode_bytes(data: bytes) -> bytes:
    return encode_varint(len(data)) + data


@dataclass(frozen=True)
class Outpoint:
    """Reference to a previous output. ``txid`` is hex in display order."""

    txid: str
    index: int

    def to_key(self) -> str:
        return f"{self.txid}:{self.index}"

    @classmethod
    def from_key(cls, key: str) -> Outpoint:
        txid, _, index = key.partition(":")
        if len(txid) != 64 or not index.isdigit():
            raise TransactionError(f"Invalid outpoint key: {key}")
        return cls(txid.lower(), int(index))

    def serialize(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + struct.pack("<I", self.index)


@dataclass
class Coin:
    """Previous output being spent: value and scriptPubKey."""

    value: int
    script: bytes

    def get_type(self) -> ScriptType:
        return get_script_type(self.script)

    def to_dict(self) -> dict[str, int | str]:
        return {"value": self.value, "script": self.script.hex()}

    @classmethod
    def from_dict(cls, data: dict) -> Coin:
        return cls(value=int(data["value"]), script=bytes.fromhex(data["script"]))


@dataclass
class TxInput:
    prevout: Outpoint
    script: bytes = b""
    sequence: int = DEFAULT_SEQUENCE
    witness: list[bytes] = field(default_factory=list)

    def serialize(self) -> bytes:
        return (
            self.prevout.serialize() + encode_bytes(self.script) + struct.pack("<I", self.sequence)
        )


@dataclass
class TxOutput:
    value: int
    script: bytes

    def get_type(self) -> ScriptType:
        return get_script_type(self.script)

    def serialize(self) -> bytes:
        return struct.pack("<Q", self.value) + encode_bytes(self.script)


@dataclass
class Transaction:
    version: int = 2
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        witness = include_witness and self.has_witness

        result = struct.pack("<I", self.version)
        if witness:
            result += bytes([0x00, 0x01])

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()

        if witness:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                for item in inp.witness:
                    result += encode_bytes(item)

        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    def txid(self) -> str:
        """Double SHA256 of the non-witness serialization, display order."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    def wtxid(self) -> str:
        return hash256(self.serialize())[::-1].hex()

    def clone(self) -> Transaction:
        return copy.deepcopy(self)

    @classmethod
    def from_bytes(cls, tx_bytes: bytes) -> Transaction:
        try:
            return cls(**_parse_transaction(tx_bytes))
        except TransactionError:
            raise
        except Exception as e:
            raise TransactionError(f"Failed to parse transaction: {e}") from e

    @classmethod
    def from_hex(cls, tx_hex: str) -> Transaction:
        try:
            raw = bytes.fromhex(tx_hex)
        except ValueError as e:
            raise TransactionError(f"Invalid transaction hex: {e}") from e
        return cls.from_bytes(raw)


@dataclass
class MutableTransaction(Transaction):
    """
    Transaction under construction.

    ``view`` maps prevout keys ("txid:index") to the coins being spent so
    signing code can look up values and scripts.
    """

    view: dict[str, Coin] = field(default_factory=dict)

    def get_coin(self, index: int) -> Coin | None:
        return self.view.get(self.inputs[index].prevout.to_key())

    def add_coin(self, prevout: Outpoint, coin: Coin) -> None:
        self.view[prevout.to_key()] = coin

    def to_tx(self) -> Transaction:
        """Immutable copy without the coin view."""
        return Transaction(
            version=self.version,
            inputs=copy.deepcopy(self.inputs),
            outputs=copy.deepcopy(self.outputs),
            locktime=self.locktime,
        )

    @classmethod
    def from_tx(cls, tx: Transaction, view: dict[str, Coin] | None = None) -> MutableTransaction:
        mtx = cls(
            version=tx.version,
            inputs=copy.deepcopy(tx.inputs),
            outputs=copy.deepcopy(tx.outputs),
            locktime=tx.locktime,
        )
        if isinstance(tx, MutableTransaction):
            mtx.view.update(tx.view)
        if view:
            mtx.view.update(view)
        return mtx


def to_immutable(tx: Transaction) -> Transaction:
    if isinstance(tx, MutableTransaction):
        return tx.to_tx()
    return tx


def _parse_transaction(tx_bytes: bytes) -> dict:
    offset = 0
    version = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
    offset += 4

    has_witness = False
    if tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
        has_witness = True
        offset += 2

    input_count, offset = read_varint(tx_bytes, offset)
    inputs: list[TxInput] = []

    for _ in range(input_count):
        txid = tx_bytes[offset : offset + 32][::-1].hex()
        offset += 32
        index = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4
        script_len, offset = read_varint(tx_bytes, offset)
        script = tx_bytes[offset : offset + script_len]
        offset += script_len
        sequence = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]
        offset += 4
        inputs.append(TxInput(Outpoint(txid, index), script, sequence))

    output_count, offset = read_varint(tx_bytes, offset)
    outputs: list[TxOutput] = []

    for _ in range(output_count):
        value = struct.unpack("<Q", tx_bytes[offset : offset + 8])[0]
        offset += 8
        script_len, offset = read_varint(tx_bytes, offset)
        script = tx_bytes[offset : offset + script_len]
        offset += script_len
        outputs.append(TxOutput(value, script))

    if has_witness:
        for inp in inputs:
            item_count, offset = read_varint(tx_bytes, offset)
            for _ in range(item_count):
                item_len, offset = read_varint(tx_bytes, offset)
                inp.witness.append(tx_bytes[offset : offset + item_len])
                offset += item_len

    if offset + 4 != len(tx_bytes):
        raise TransactionError(f"Unexpected transaction length: {len(tx_bytes)} bytes")

    locktime = struct.unpack("<I", tx_bytes[offset : offset + 4])[0]

    return {"version": version, "inputs": inputs, "outputs": outputs, "locktime": locktime}
