"""
Input classification.

Decides the script archetype of an input from the coin being spent and the
witness hint, and maps archetypes to Trezor input script types.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from hwsigner.bitcoin.script import (
    ScriptError,
    ScriptType,
    is_witness_program,
    is_witness_pubkeyhash,
    parse_script,
)
from hwsigner.bitcoin.transaction import Coin
from hwsigner.errors import AmbiguousNestingError, UnsupportedError


class InputArchetype(str, Enum):
    PUBKEY = "pubkey"
    PUBKEYHASH = "pubkeyhash"
    WITNESSPUBKEYHASH = "witnesspubkeyhash"
    SCRIPTHASH = "scripthash"
    WITNESSSCRIPTHASH = "witnessscripthash"
    NESTED_P2WPKH = "nested_p2wpkh"
    NESTED_P2WSH = "nested_p2wsh"


_DIRECT = {
    ScriptType.PUBKEY: InputArchetype.PUBKEY,
    ScriptType.PUBKEYHASH: InputArchetype.PUBKEYHASH,
    ScriptType.WITNESSPUBKEYHASH: InputArchetype.WITNESSPUBKEYHASH,
    ScriptType.WITNESSSCRIPTHASH: InputArchetype.WITNESSSCRIPTHASH,
}

_TREZOR_SCRIPT_TYPES = {
    InputArchetype.PUBKEYHASH: "SPENDADDRESS",
    InputArchetype.WITNESSPUBKEYHASH: "SPENDWITNESS",
    InputArchetype.WITNESSSCRIPTHASH: "SPENDWITNESS",
    InputArchetype.SCRIPTHASH: "SPENDMULTISIG",
    InputArchetype.NESTED_P2WPKH: "SPENDP2SHWITNESS",
    InputArchetype.NESTED_P2WSH: "SPENDP2SHWITNESS",
}


def _nested_program(script_sig: bytes) -> bytes | None:
    """The witness program pushed by a nested segwit scriptSig, if any."""
    try:
        ops = parse_script(script_sig)
    except ScriptError:
        return None

    if len(ops) != 1 or ops[0][1] is None:
        return None

    program = ops[0][1]
    return program if is_witness_program(program) else None


def _archetype_of_program(program: bytes) -> InputArchetype:
    if is_witness_pubkeyhash(program):
        return InputArchetype.NESTED_P2WPKH
    return InputArchetype.NESTED_P2WSH


def classify_input(
    coin: Coin,
    witness: bool,
    *,
    redeem: bytes | None = None,
    multisig: bool = False,
    script_sig: bytes = b"",
    witness_stack: Sequence[bytes] = (),
) -> InputArchetype:
    """
    Archetype of an input spending ``coin``.

    A scripthash coin spent with the witness hint is nested segwit. If the
    input already carries a scriptSig pushing a witness program, that program
    decides the kind and the witness stack must be non-empty. An unsigned
    input is resolved from the redeem script or the multisig flag.
    """
    script_type = coin.get_type()

    if script_type in _DIRECT:
        return _DIRECT[script_type]

    if script_type != ScriptType.SCRIPTHASH:
        raise UnsupportedError(f"Can not figure out input type: {script_type.value}.")

    if not witness:
        return InputArchetype.SCRIPTHASH

    program = _nested_program(script_sig)
    if program is not None:
        if not witness_stack:
            raise AmbiguousNestingError(
                "scriptSig pushes a witness program but the witness stack is empty."
            )
        return _archetype_of_program(program)

    if redeem is not None and is_witness_program(redeem):
        return _archetype_of_program(redeem)

    if redeem is not None or multisig:
        return InputArchetype.NESTED_P2WSH

    return InputArchetype.NESTED_P2WPKH


def trezor_script_type(archetype: InputArchetype) -> str:
    if archetype not in _TREZOR_SCRIPT_TYPES:
        raise UnsupportedError(f"{archetype.value} inputs are not supported.")
    return _TREZOR_SCRIPT_TYPES[archetype]


def is_legacy(archetype: InputArchetype) -> bool:
    return archetype in (
        InputArchetype.PUBKEY,
        InputArchetype.PUBKEYHASH,
        InputArchetype.SCRIPTHASH,
    )


def is_witness(archetype: InputArchetype) -> bool:
    return not is_legacy(archetype)


def is_multisig_archetype(archetype: InputArchetype) -> bool:
    """Archetypes that spend through a multisig redeem/witness script."""
    return archetype in (
        InputArchetype.SCRIPTHASH,
        InputArchetype.WITNESSSCRIPTHASH,
        InputArchetype.NESTED_P2WSH,
    )
