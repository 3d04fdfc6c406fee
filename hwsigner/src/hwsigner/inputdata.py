"""
Per-input signing metadata.

An InputData describes one input the signer owns: the derivation path of the
signing key, the output being spent, whether it is spent with a witness, and
optionally the previous transaction, a redeem script and multisig cosigner
data. Inputs without this metadata (external inputs) are rejected.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from hwsigner.bitcoin.address import AddressError, script_to_address
from hwsigner.bitcoin.transaction import (
    Coin,
    Outpoint,
    Transaction,
    TransactionError,
    TxOutput,
    read_varint,
)
from hwsigner.constants import MAX_MULTISIG_PUBKEYS
from hwsigner.errors import ConsistencyError, ExternalInputError
from hwsigner.path import Path, parse_path


@dataclass
class MultisigKey:
    """One cosigner: account xpub, path below it, and its signature (hex)."""

    xpub: str
    path: Path
    signature: str = ""

    @classmethod
    def from_options(cls, options: MultisigKey | Mapping[str, Any]) -> MultisigKey:
        if isinstance(options, MultisigKey):
            return options

        xpub = options.get("xpub")
        if not isinstance(xpub, str):
            raise ConsistencyError("multisig pubkey xpub must be a string.")

        signature = options.get("signature") or ""
        if isinstance(signature, bytes):
            signature = signature.hex()

        return cls(xpub=xpub, path=parse_path(options["path"]), signature=signature.lower())

    def to_json(self) -> dict[str, str]:
        return {"xpub": self.xpub, "path": self.path.to_str(), "signature": self.signature}


@dataclass
class MultisigInfo:
    m: int
    pubkeys: list[MultisigKey] = field(default_factory=list)

    def __post_init__(self) -> None:
        n = len(self.pubkeys)
        if isinstance(self.m, bool) or not isinstance(self.m, int):
            raise ConsistencyError("multisig m must be an integer.")
        if self.m < 1:
            raise ConsistencyError(f"multisig m must be positive, got {self.m}.")
        if self.m > n:
            raise ConsistencyError(f"M is more than N in multisig ({self.m}-of-{n}).")
        if n > MAX_MULTISIG_PUBKEYS:
            raise ConsistencyError(f"Too many multisig pubkeys: {n} > {MAX_MULTISIG_PUBKEYS}.")

    @property
    def n(self) -> int:
        return len(self.pubkeys)

    @classmethod
    def from_options(cls, options: MultisigInfo | Mapping[str, Any]) -> MultisigInfo:
        if isinstance(options, MultisigInfo):
            return options

        pubkeys = options.get("pubkeys")
        if not isinstance(pubkeys, list):
            raise ConsistencyError("multisig pubkeys must be a list.")

        return cls(
            m=options.get("m"),  # type: ignore[arg-type]
            pubkeys=[MultisigKey.from_options(pk) for pk in pubkeys],
        )

    def to_json(self) -> dict[str, Any]:
        return {"m": self.m, "pubkeys": [pk.to_json() for pk in self.pubkeys]}


@dataclass
class InputData:
    path: Path
    prevout: Outpoint
    output: TxOutput
    witness: bool = False
    prev_tx: Transaction | None = None
    redeem: bytes | None = None
    multisig: MultisigInfo | None = None

    def __post_init__(self) -> None:
        if self.prev_tx is not None:
            if self.prev_tx.txid() != self.prevout.txid:
                raise ConsistencyError("prevout hash and prev_tx hash do not match.")
            if self.prevout.index >= len(self.prev_tx.outputs):
                raise ConsistencyError(f"prev_tx has no output {self.prevout.index}.")

        if not self.witness and self.prev_tx is None:
            raise ConsistencyError("non-witness inputs need prev_tx.")

    @property
    def coin(self) -> Coin:
        return Coin(value=self.output.value, script=self.output.script)

    def to_key(self) -> str:
        return self.prevout.to_key()

    @classmethod
    def from_options(
        cls, options: InputData | Mapping[str, Any] | None = None, **kwargs: Any
    ) -> InputData:
        """
        Build from loosely typed options.

        Keys: ``path`` (required), ``prevout``, ``coin``, ``output``,
        ``prev_tx``, ``witness``, ``redeem``, ``multisig``. Either ``prevout``
        or a coin carrying ``txid``/``index`` identifies the input; the spent
        output comes from ``output``, ``coin`` or ``prev_tx``.
        """
        if isinstance(options, InputData):
            return options

        opts: dict[str, Any] = dict(options or {})
        opts.update(kwargs)

        if opts.get("path") is None:
            raise ExternalInputError("Input path is required.")

        path = parse_path(opts["path"])

        coin_opt = opts.get("coin")
        prevout: Outpoint | None = None
        output: TxOutput | None = None

        if opts.get("prevout") is not None:
            prevout = _parse_prevout(opts["prevout"])

        if coin_opt is not None:
            coin_output, coin_prevout = _parse_coin(coin_opt)
            if prevout is None:
                prevout = coin_prevout
            output = coin_output

        if prevout is None:
            raise ExternalInputError("prevout or coin with txid/index is required.")

        if opts.get("output") is not None:
            output = _parse_output(opts["output"])

        prev_tx = None
        if opts.get("prev_tx") is not None:
            prev_tx = _parse_tx(opts["prev_tx"])
            if prevout.index < len(prev_tx.outputs):
                output = prev_tx.outputs[prevout.index]

        if output is None:
            raise ExternalInputError("output, coin or prev_tx is required.")

        witness = opts.get("witness", False)
        if not isinstance(witness, bool):
            raise ConsistencyError("witness must be a boolean.")

        redeem = opts.get("redeem")
        if isinstance(redeem, str):
            try:
                redeem = bytes.fromhex(redeem)
            except ValueError as e:
                raise ConsistencyError("redeem must be hex.") from e

        multisig = None
        if opts.get("multisig") is not None:
            multisig = MultisigInfo.from_options(opts["multisig"])

        return cls(
            path=path,
            prevout=prevout,
            output=output,
            witness=witness,
            prev_tx=prev_tx,
            redeem=redeem,
            multisig=multisig,
        )

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> InputData:
        if not isinstance(data.get("path"), str):
            raise ExternalInputError("json path must be a string.")
        if not isinstance(data.get("witness"), bool):
            raise ConsistencyError("json witness must be a boolean.")

        return cls.from_options(
            path=data["path"],
            prevout=data.get("prevout"),
            coin=data.get("coin"),
            output=data.get("output"),
            prev_tx=data.get("prev_tx"),
            witness=data["witness"],
            redeem=data.get("redeem"),
            multisig=data.get("multisig"),
        )

    def to_json(self, network: str = "main") -> dict[str, Any]:
        try:
            address = script_to_address(self.output.script, network)
        except AddressError:
            address = None

        return {
            "path": self.path.to_str(),
            "prevout": {"txid": self.prevout.txid, "index": self.prevout.index},
            "witness": self.witness,
            "output": {
                "value": self.output.value,
                "script": self.output.script.hex(),
                "address": address,
            },
            "prev_tx": self.prev_tx.to_hex() if self.prev_tx else None,
            "redeem": self.redeem.hex() if self.redeem else None,
            "multisig": self.multisig.to_json() if self.multisig else None,
        }


InputDataOptions = InputData | Mapping[str, Any]


def prepare_sign_options(
    input_data: Iterable[InputDataOptions] | Mapping[str, InputDataOptions],
) -> dict[str, InputData]:
    """Normalize signing metadata to a dict keyed by prevout key."""
    items: Iterable[InputDataOptions]

    if isinstance(input_data, Mapping):
        items = input_data.values()
    else:
        items = input_data

    mapping: dict[str, InputData] = {}
    for item in items:
        data = InputData.from_options(item)
        mapping[data.to_key()] = data

    return mapping


def get_input_data(tx: Transaction, input_data: Mapping[str, InputData]) -> list[InputData]:
    """Metadata for every input of ``tx``, in input order."""
    result = []
    for inp in tx.inputs:
        key = inp.prevout.to_key()
        data = input_data.get(key)
        if data is None:
            raise ExternalInputError(f"Could not get metadata for input {key}.")
        result.append(data)
    return result


def _parse_prevout(value: Any) -> Outpoint:
    if isinstance(value, Outpoint):
        return value
    if isinstance(value, str):
        try:
            return Outpoint.from_key(value)
        except TransactionError as e:
            raise ConsistencyError(f"Invalid prevout: {e}") from e
    if isinstance(value, Mapping):
        txid = value.get("txid", value.get("hash"))
        try:
            return Outpoint(str(txid).lower(), int(value["index"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ConsistencyError(f"Invalid prevout: {e}") from e
    raise ConsistencyError("Unknown type for prevout.")


def _parse_output(value: Any) -> TxOutput:
    if isinstance(value, TxOutput):
        return value
    if isinstance(value, Coin):
        return TxOutput(value.value, value.script)
    if isinstance(value, (bytes, str)):
        raw = bytes.fromhex(value) if isinstance(value, str) else value
        try:
            script_len, offset = read_varint(raw, 8)
        except IndexError as e:
            raise ConsistencyError("Truncated raw output.") from e
        return TxOutput(int.from_bytes(raw[:8], "little"), raw[offset : offset + script_len])
    if isinstance(value, Mapping):
        try:
            script = value["script"]
            if isinstance(script, str):
                script = bytes.fromhex(script)
            return TxOutput(int(value["value"]), script)
        except (KeyError, TypeError, ValueError) as e:
            raise ConsistencyError(f"Invalid output: {e}") from e
    raise ConsistencyError("Unknown type for output.")


def _parse_coin(value: Any) -> tuple[TxOutput, Outpoint | None]:
    if isinstance(value, Coin):
        return TxOutput(value.value, value.script), None
    if isinstance(value, Mapping):
        prevout = None
        txid = value.get("txid", value.get("hash"))
        if txid is not None and value.get("index") is not None:
            prevout = Outpoint(str(txid).lower(), int(value["index"]))
        return _parse_output(value), prevout
    raise ConsistencyError("Unknown type for coin.")


def _parse_tx(value: Any) -> Transaction:
    if isinstance(value, Transaction):
        return value
    try:
        if isinstance(value, bytes):
            return Transaction.from_bytes(value)
        if isinstance(value, str):
            return Transaction.from_hex(value)
    except TransactionError as e:
        raise ConsistencyError(f"Invalid prev_tx: {e}") from e
    raise ConsistencyError("Unknown type for prev_tx.")
