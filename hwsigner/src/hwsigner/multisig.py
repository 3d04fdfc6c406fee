"""
Multisig signature collection.

Cosigner signatures travel in the multisig metadata of each input. This module
rebuilds the redeem script from the cosigner xpubs, lays out the empty
signature slots of an input and fills them in redeem-script key order.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from coincurve import PrivateKey
from loguru import logger

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import Network
from hwsigner.bitcoin.script import (
    ScriptError,
    ScriptType,
    compile_script,
    hash160,
    is_signature_encoding,
    multisig_script,
    p2wpkh_script,
    p2wsh_script,
    parse_multisig,
    parse_script,
    push_data,
    sha256,
)
from hwsigner.bitcoin.transaction import MutableTransaction
from hwsigner.constants import SIGHASH_ALL
from hwsigner.errors import ConsistencyError, ExternalInputError
from hwsigner.inputdata import InputData, MultisigInfo
from hwsigner.models import NetworkType

NetworkArg = str | NetworkType | Network


@dataclass
class KeyRing:
    """
    Key material and spending flags for one input.

    ``script`` is the multisig redeem (or witness) script, None for
    single-key inputs.
    """

    public_key: bytes
    private_key: PrivateKey | None = None
    witness: bool = False
    nested: bool = False
    script: bytes | None = None


def derive_multisig_pubkeys(multisig: MultisigInfo, network: NetworkArg) -> list[bytes]:
    """Cosigner public keys, in metadata order."""
    return [
        HDPublicKey.from_base58(pk.xpub, network).derive_path(pk.path).public_key
        for pk in multisig.pubkeys
    ]


def get_redeem_script(data: InputData, network: NetworkArg) -> bytes:
    """Rebuild OP_M <pubkeys> OP_N OP_CHECKMULTISIG from the multisig metadata."""
    if data.multisig is None:
        raise ConsistencyError("Can not get redeem script for non-multisig input.")

    pubkeys = derive_multisig_pubkeys(data.multisig, network)
    return multisig_script(data.multisig.m, pubkeys)


def create_ring(
    data: InputData,
    public_key: bytes,
    network: NetworkArg,
    private_key: PrivateKey | None = None,
) -> KeyRing:
    nested = data.witness and data.coin.get_type() == ScriptType.SCRIPTHASH

    script = None
    if data.multisig is not None:
        script = get_redeem_script(data, network)

    return KeyRing(
        public_key=public_key,
        private_key=private_key,
        witness=data.witness,
        nested=nested,
        script=script,
    )


def _get_stack(mtx: MutableTransaction, index: int, ring: KeyRing) -> list[bytes]:
    inp = mtx.inputs[index]

    if ring.witness:
        return list(inp.witness)

    try:
        ops = parse_script(inp.script)
    except ScriptError as e:
        raise ConsistencyError(f"Input {index} has an unparsable scriptSig.") from e

    stack = []
    for _, data in ops:
        if data is None:
            raise ConsistencyError(f"Input {index} scriptSig is not push-only.")
        stack.append(data)
    return stack


def _set_stack(mtx: MutableTransaction, index: int, ring: KeyRing, stack: list[bytes]) -> None:
    inp = mtx.inputs[index]

    if ring.witness:
        inp.witness = stack
    else:
        inp.script = compile_script(list(stack))


def template_input(mtx: MutableTransaction, index: int, ring: KeyRing) -> bool:
    """
    Lay out empty signature slots for ``ring`` on input ``index``.

    Inputs that already carry a scriptSig or witness are left alone.
    """
    inp = mtx.inputs[index]
    if inp.script or inp.witness:
        return False

    if ring.script is not None:
        parsed = parse_multisig(ring.script)
        if parsed is None:
            raise ConsistencyError("Ring script is not a multisig script.")
        _, keys = parsed
        stack = [b""] + [b""] * len(keys) + [ring.script]
        program = p2wsh_script(sha256(ring.script))
    else:
        stack = [b"", ring.public_key]
        program = p2wpkh_script(hash160(ring.public_key))

    if ring.witness:
        inp.witness = stack
        if ring.nested:
            inp.script = push_data(program)
    else:
        inp.script = compile_script(list(stack))

    return True


def apply_signature(mtx: MutableTransaction, index: int, ring: KeyRing, signature: bytes) -> bool:
    """
    Place ``signature`` in the slot of ``ring.public_key``.

    Multisig slots follow key order in the redeem script. Once ``m``
    signatures are present the input is finalized: empty slots are removed
    and surplus signatures dropped. Returns False if nothing was placed.
    """
    stack = _get_stack(mtx, index, ring)

    if ring.script is None:
        if len(stack) != 2 or stack[1] != ring.public_key:
            return False
        stack[0] = signature
        _set_stack(mtx, index, ring, stack)
        return True

    parsed = parse_multisig(ring.script)
    if parsed is None:
        raise ConsistencyError("Ring script is not a multisig script.")
    m, keys = parsed

    if len(stack) < 2 or stack[-1] != ring.script:
        raise ConsistencyError(f"Input {index} is not templated for this redeem script.")

    if ring.public_key not in keys:
        raise ConsistencyError("Public key is not part of the redeem script.")

    slots = stack[1:-1]

    # Already finalized
    if len(slots) != len(keys):
        return False

    key_index = keys.index(ring.public_key)
    total = sum(1 for slot in slots if slot)

    placed = False
    if not slots[key_index] and total < m:
        slots[key_index] = signature
        total += 1
        placed = True

    if total >= m:
        slots = [slot for slot in slots if slot][:m]

    _set_stack(mtx, index, ring, [b""] + slots + [ring.script])
    return placed


def apply_other_signatures(
    mtx: MutableTransaction,
    input_data: Mapping[str, InputData],
    network: NetworkArg,
) -> MutableTransaction:
    """
    Apply cosigner signatures from the multisig metadata.

    Returns a copy of ``mtx`` (with its coin view) with every non-empty
    signature placed.
    """
    result = MutableTransaction.from_tx(mtx)

    for i, inp in enumerate(result.inputs):
        key = inp.prevout.to_key()
        data = input_data.get(key)

        if data is None:
            raise ExternalInputError(f"Could not get metadata for input {key}.")

        if data.multisig is None:
            continue

        for pk in data.multisig.pubkeys:
            if not pk.signature:
                continue

            signature = bytes.fromhex(pk.signature)
            if not is_signature_encoding(signature):
                signature += bytes([SIGHASH_ALL])

            public_key = HDPublicKey.from_base58(pk.xpub, network).derive_path(pk.path).public_key
            ring = create_ring(data, public_key, network)

            template_input(result, i, ring)
            if not apply_signature(result, i, ring, signature):
                logger.debug(f"Signature for input {i} not applied (slot taken or input final)")

    return result
