"""
Trezor sign requests.

Turns a transaction and its input metadata into the request accepted by the
bridge ``signTransaction`` call. Input types:

- SPENDADDRESS: standard P2PKH
- SPENDMULTISIG: P2SH multisig
- SPENDWITNESS: native segwit (P2WPKH, P2WSH)
- SPENDP2SHWITNESS: segwit over P2SH

The bridge only knows the mainnet and testnet coins. Every other network is
signed as testnet; signing does not depend on address prefixes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from hwsigner.bitcoin.address import script_to_address
from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import get_network
from hwsigner.bitcoin.script import ScriptType, get_nulldata, is_signature_encoding
from hwsigner.bitcoin.transaction import Transaction, TxInput, TxOutput, to_immutable
from hwsigner.classifier import (
    InputArchetype,
    classify_input,
    is_legacy,
    is_multisig_archetype,
    trezor_script_type,
)
from hwsigner.constants import SIGHASH_ALL
from hwsigner.errors import ConsistencyError, ExternalInputError, UnsupportedError
from hwsigner.inputdata import InputData, MultisigInfo, MultisigKey
from hwsigner.models import NetworkType
from hwsigner.multisig import NetworkArg

_OUTPUT_SCRIPT_TYPES = {
    ScriptType.PUBKEY: "PAYTOADDRESS",
    ScriptType.PUBKEYHASH: "PAYTOADDRESS",
    ScriptType.SCRIPTHASH: "PAYTOADDRESS",
    ScriptType.WITNESSPUBKEYHASH: "PAYTOWITNESS",
    ScriptType.WITNESSSCRIPTHASH: "PAYTOWITNESS",
}


def get_coin_name(network: NetworkArg) -> str:
    """Trezor coin name: Bitcoin for mainnet, Testnet for everything else."""
    if get_network(network).type == NetworkType.MAINNET:
        return "Bitcoin"
    return "Testnet"


def strip_hash_type(signature: str) -> str:
    """
    Remove the sighash byte from a hex signature.

    Canonical DER with a sighash byte loses its last byte, plain DER passes
    through, anything else is rejected.
    """
    if signature == "":
        return ""

    try:
        raw = bytes.fromhex(signature)
    except ValueError as e:
        raise ConsistencyError(f"Signature is not hex: {signature}") from e

    if is_signature_encoding(raw):
        return raw[:-1].hex()

    if is_signature_encoding(raw + bytes([SIGHASH_ALL])):
        return signature.lower()

    raise ConsistencyError(f"Invalid signature encoding: {signature}")


def tx_to_trezor(tx: Transaction) -> dict[str, Any]:
    """Convert a previous transaction to a Trezor RefTransaction."""
    tx = to_immutable(tx)

    return {
        "hash": tx.txid(),
        "version": tx.version,
        "lock_time": tx.locktime,
        "inputs": [
            {
                "prev_hash": inp.prevout.txid,
                "prev_index": inp.prevout.index,
                "sequence": inp.sequence,
                "script_sig": inp.script.hex(),
            }
            for inp in tx.inputs
        ],
        "bin_outputs": [
            {"amount": out.value, "script_pubkey": out.script.hex()} for out in tx.outputs
        ],
    }


def sort_keys(multisig: MultisigInfo, network: NetworkArg) -> list[MultisigKey]:
    """Cosigners ordered by derived public key bytes."""

    def derived_key(pk: MultisigKey) -> bytes:
        return HDPublicKey.from_base58(pk.xpub, network).derive_path(pk.path).public_key

    return sorted(multisig.pubkeys, key=derived_key)


def process_multisig(multisig: MultisigInfo, network: NetworkArg) -> dict[str, Any]:
    sorted_keys = sort_keys(multisig, network)

    return {
        "m": multisig.m,
        "pubkeys": [{"node": pk.xpub, "address_n": pk.path.to_list()} for pk in sorted_keys],
        "signatures": [strip_hash_type(pk.signature) for pk in sorted_keys],
    }


def process_input(
    inp: TxInput, data: InputData, network: NetworkArg
) -> tuple[dict[str, Any], bool]:
    """
    Build a Trezor TxInput.

    Returns the input and whether it needs a reference transaction.
    """
    archetype = classify_input(
        data.coin,
        data.witness,
        redeem=data.redeem,
        multisig=data.multisig is not None,
        script_sig=inp.script,
        witness_stack=inp.witness,
    )

    trezor_input: dict[str, Any] = {
        "prev_hash": inp.prevout.txid,
        "prev_index": inp.prevout.index,
        "sequence": inp.sequence,
        "script_type": trezor_script_type(archetype),
        "address_n": data.path.to_list(),
        "amount": str(data.coin.value),
    }

    if is_multisig_archetype(archetype):
        if data.multisig is None:
            if archetype == InputArchetype.SCRIPTHASH:
                raise UnsupportedError("P2SH inputs without multisig data are not supported.")
        else:
            trezor_input["multisig"] = process_multisig(data.multisig, network)

    return trezor_input, is_legacy(archetype)


def process_output(output: TxOutput, network: NetworkArg) -> dict[str, Any]:
    """
    Build a Trezor TxOutput.

    OP_RETURN outputs carry their payload in ``op_return_data``.
    """
    output_type = output.get_type()
    trezor_output: dict[str, Any] = {"amount": str(output.value)}

    if output_type == ScriptType.NULLDATA:
        trezor_output["script_type"] = "PAYTOOPRETURN"
        trezor_output["op_return_data"] = get_nulldata(output.script).hex()
        return trezor_output

    if output_type not in _OUTPUT_SCRIPT_TYPES:
        raise UnsupportedError(f"Output type {output_type.value} is not supported.")

    trezor_output["script_type"] = _OUTPUT_SCRIPT_TYPES[output_type]
    trezor_output["address"] = script_to_address(output.script, network)
    return trezor_output


def create_trezor_inputs(
    tx: Transaction,
    input_data: Mapping[str, InputData],
    network: NetworkArg,
) -> dict[str, Any]:
    """Prepare the Trezor sign request for ``tx``."""
    request: dict[str, Any] = {
        "version": tx.version,
        "lock_time": tx.locktime,
        "inputs_count": len(tx.inputs),
        "outputs_count": len(tx.outputs),
        "inputs": [],
        "outputs": [],
        "refTxs": [],
    }

    ref_txs: dict[str, Transaction] = {}
    for data in input_data.values():
        if data.prev_tx is not None:
            ref_txs[data.prev_tx.txid()] = data.prev_tx

    added: set[str] = set()

    for inp in tx.inputs:
        key = inp.prevout.to_key()
        data = input_data.get(key)
        if data is None:
            raise ExternalInputError(f"Could not get metadata for input {key}.")

        trezor_input, legacy = process_input(inp, data, network)

        if legacy:
            txid = inp.prevout.txid
            if txid not in ref_txs:
                raise ConsistencyError(f"Reference transaction required for input {key}.")
            if txid not in added:
                request["refTxs"].append(tx_to_trezor(ref_txs[txid]))
                added.add(txid)

        request["inputs"].append(trezor_input)

    for output in tx.outputs:
        request["outputs"].append(process_output(output, network))

    return request
