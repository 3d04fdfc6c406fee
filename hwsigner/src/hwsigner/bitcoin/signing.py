"""
Signature hashes and ECDSA signing for transaction inputs and messages.
"""

from __future__ import annotations

import struct

from coincurve import PrivateKey, PublicKey

from hwsigner.bitcoin.script import pubkey_to_p2pkh_script
from hwsigner.bitcoin.transaction import Transaction, encode_bytes, encode_varint, hash256
from hwsigner.constants import SIGHASH_ALL


class TransactionSigningError(Exception):
    pass


def compute_sighash_legacy(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Original (pre-segwit) signature hash for SIGHASH_ALL."""
    if input_index >= len(tx.inputs):
        raise TransactionSigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise TransactionSigningError(f"Unsupported sighash type: {sighash_type}")

    result = struct.pack("<I", tx.version)
    result += encode_varint(len(tx.inputs))
    for i, inp in enumerate(tx.inputs):
        script = script_code if i == input_index else b""
        result += inp.prevout.serialize() + encode_bytes(script) + struct.pack("<I", inp.sequence)

    result += encode_varint(len(tx.outputs))
    for out in tx.outputs:
        result += out.serialize()

    result += struct.pack("<I", tx.locktime)
    result += struct.pack("<I", sighash_type)

    return hash256(result)


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """BIP143 signature hash for SIGHASH_ALL."""
    if input_index >= len(tx.inputs):
        raise TransactionSigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise TransactionSigningError(f"Unsupported sighash type: {sighash_type}")

    hash_prevouts = hash256(b"".join(inp.prevout.serialize() for inp in tx.inputs))
    hash_sequence = hash256(b"".join(struct.pack("<I", inp.sequence) for inp in tx.inputs))
    hash_outputs = hash256(b"".join(out.serialize() for out in tx.outputs))

    target_input = tx.inputs[input_index]

    preimage = (
        struct.pack("<I", tx.version)
        + hash_prevouts
        + hash_sequence
        + target_input.prevout.serialize()
        + encode_bytes(script_code)
        + struct.pack("<Q", value)
        + struct.pack("<I", target_input.sequence)
        + hash_outputs
        + struct.pack("<I", tx.locktime)
        + struct.pack("<I", sighash_type)
    )

    return hash256(preimage)


def sign_hash(sighash: bytes, private_key: PrivateKey, sighash_type: int = SIGHASH_ALL) -> bytes:
    """
    DER signature over a precomputed hash with the sighash type appended.
    """
    # The sighash is already SHA256d; hasher=None skips hashing
    signature = private_key.sign(sighash, hasher=None)
    return signature + bytes([sighash_type])


def verify_hash(sighash: bytes, signature: bytes, pubkey: bytes) -> bool:
    """Verify a DER signature (without sighash byte) over a precomputed hash."""
    try:
        return PublicKey(pubkey).verify(signature, sighash, hasher=None)
    except ValueError:
        return False


def create_p2wpkh_script_code(pubkey_bytes: bytes) -> bytes:
    """
    scriptCode for P2WPKH signing (BIP143): the P2PKH script of the key.
    """
    return pubkey_to_p2pkh_script(pubkey_bytes)


def bitcoin_message_hash(message: bytes | str) -> bytes:
    """
    Hash a message using Bitcoin's message signing format.

    Format: SHA256(SHA256("\\x18Bitcoin Signed Message:\\n" + varint(len) + message))
    """
    prefix = b"\x18Bitcoin Signed Message:\n"

    msg_bytes = message.encode("utf-8") if isinstance(message, str) else message

    return hash256(prefix + encode_varint(len(msg_bytes)) + msg_bytes)


def sign_message_compact(message: bytes | str, private_key: PrivateKey) -> bytes:
    """
    65-byte compact recoverable signature (header, r, s) as produced by
    Bitcoin Core's signmessage for a compressed key.
    """
    recoverable = private_key.sign_recoverable(bitcoin_message_hash(message), hasher=None)
    r_s, recid = recoverable[:64], recoverable[64]
    header = 27 + recid + 4
    return bytes([header]) + r_s


def recover_message_pubkey(message: bytes | str, signature: bytes) -> bytes:
    """Recover the compressed public key from a compact message signature."""
    if len(signature) != 65:
        raise TransactionSigningError(f"Invalid compact signature length: {len(signature)}")

    header = signature[0]
    if not 27 <= header <= 34:
        raise TransactionSigningError(f"Invalid compact signature header: {header}")

    recid = (header - 27) & 3
    recoverable = signature[1:] + bytes([recid])
    pubkey = PublicKey.from_signature_and_message(
        recoverable, bitcoin_message_hash(message), hasher=None
    )
    return pubkey.format(compressed=True)
