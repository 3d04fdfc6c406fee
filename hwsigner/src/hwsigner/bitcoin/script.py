"""
Script parsing, classification and construction.
"""

from __future__ import annotations

import hashlib
from enum import Enum

from hwsigner.constants import MAX_MULTISIG_PUBKEYS

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1NEGATE = 0x4F
OP_1 = 0x51
OP_16 = 0x60
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKMULTISIG = 0xAE


class ScriptError(Exception):
    pass


class ScriptType(str, Enum):
    PUBKEY = "pubkey"
    PUBKEYHASH = "pubkeyhash"
    SCRIPTHASH = "scripthash"
    MULTISIG = "multisig"
    NULLDATA = "nulldata"
    WITNESSPUBKEYHASH = "witnesspubkeyhash"
    WITNESSSCRIPTHASH = "witnessscripthash"
    NONSTANDARD = "nonstandard"


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def push_data(data: bytes) -> bytes:
    """Minimal push of ``data``."""
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    return bytes([OP_PUSHDATA4]) + length.to_bytes(4, "little") + data


def push_int(value: int) -> bytes:
    """Push a small integer, using OP_0..OP_16 where possible."""
    if value == 0:
        return bytes([OP_0])
    if 1 <= value <= 16:
        return bytes([OP_1 + value - 1])
    if value < 0:
        raise ScriptError(f"Negative script number: {value}")

    # Script number: little-endian with a sign bit
    raw = value.to_bytes((value.bit_length() + 7) // 8, "little")
    if raw[-1] & 0x80:
        raw += b"\x00"
    return push_data(raw)


def parse_script(script: bytes) -> list[tuple[int, bytes | None]]:
    """
    Split a script into (opcode, data) pairs.

    ``data`` is the pushed bytes for push opcodes and None otherwise.
    Raises ScriptError on truncated pushes.
    """
    ops: list[tuple[int, bytes | None]] = []
    offset = 0

    while offset < len(script):
        op = script[offset]
        offset += 1

        if op == OP_0:
            ops.append((op, b""))
            continue

        if op < OP_PUSHDATA1:
            size = op
        elif op == OP_PUSHDATA1:
            if offset + 1 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA1")
            size = script[offset]
            offset += 1
        elif op == OP_PUSHDATA2:
            if offset + 2 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA2")
            size = int.from_bytes(script[offset : offset + 2], "little")
            offset += 2
        elif op == OP_PUSHDATA4:
            if offset + 4 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA4")
            size = int.from_bytes(script[offset : offset + 4], "little")
            offset += 4
        else:
            ops.append((op, None))
            continue

        if offset + size > len(script):
            raise ScriptError("Push past end of script")

        ops.append((op, script[offset : offset + size]))
        offset += size

    return ops


def compile_script(items: list[bytes | int]) -> bytes:
    """Build a script from pushes (bytes) and opcodes (int)."""
    out = b""
    for item in items:
        if isinstance(item, int):
            out += bytes([item])
        else:
            out += push_data(item)
    return out


def _small_int(op: int) -> int | None:
    if op == OP_0:
        return 0
    if OP_1 <= op <= OP_16:
        return op - OP_1 + 1
    return None


def _is_pubkey(data: bytes | None) -> bool:
    if data is None:
        return False
    if len(data) == 33:
        return data[0] in (0x02, 0x03)
    if len(data) == 65:
        return data[0] == 0x04
    return False


def is_pubkeyhash(script: bytes) -> bool:
    return (
        len(script) == 25
        and script[0] == OP_DUP
        and script[1] == OP_HASH160
        and script[2] == 0x14
        and script[23] == OP_EQUALVERIFY
        and script[24] == OP_CHECKSIG
    )


def is_scripthash(script: bytes) -> bool:
    return (
        len(script) == 23
        and script[0] == OP_HASH160
        and script[1] == 0x14
        and script[22] == OP_EQUAL
    )


def is_witness_pubkeyhash(script: bytes) -> bool:
    return len(script) == 22 and script[0] == OP_0 and script[1] == 0x14


def is_witness_scripthash(script: bytes) -> bool:
    return len(script) == 34 and script[0] == OP_0 and script[1] == 0x20


def is_witness_program(script: bytes) -> bool:
    """Version 0 witness program (P2WPKH or P2WSH)."""
    return is_witness_pubkeyhash(script) or is_witness_scripthash(script)


def is_nulldata(script: bytes) -> bool:
    if not script or script[0] != OP_RETURN:
        return False
    try:
        ops = parse_script(script[1:])
    except ScriptError:
        return False
    return all(data is not None for _, data in ops)


def is_pubkey_script(script: bytes) -> bool:
    try:
        ops = parse_script(script)
    except ScriptError:
        return False
    return len(ops) == 2 and _is_pubkey(ops[0][1]) and ops[1][0] == OP_CHECKSIG


def parse_multisig(script: bytes) -> tuple[int, list[bytes]] | None:
    """Return (m, pubkeys) for a bare multisig script, None otherwise."""
    try:
        ops = parse_script(script)
    except ScriptError:
        return None

    if len(ops) < 4 or ops[-1][0] != OP_CHECKMULTISIG:
        return None

    m = _small_int(ops[0][0])
    n = _small_int(ops[-2][0])
    if m is None or n is None or m < 1 or n < m:
        return None

    keys = [data for _, data in ops[1:-2]]
    if len(keys) != n or not all(_is_pubkey(k) for k in keys):
        return None

    return m, [bytes(k) for k in keys if k is not None]


def get_script_type(script: bytes) -> ScriptType:
    """Classify an output script."""
    if is_pubkeyhash(script):
        return ScriptType.PUBKEYHASH
    if is_scripthash(script):
        return ScriptType.SCRIPTHASH
    if is_witness_pubkeyhash(script):
        return ScriptType.WITNESSPUBKEYHASH
    if is_witness_scripthash(script):
        return ScriptType.WITNESSSCRIPTHASH
    if is_pubkey_script(script):
        return ScriptType.PUBKEY
    if is_nulldata(script):
        return ScriptType.NULLDATA
    if parse_multisig(script) is not None:
        return ScriptType.MULTISIG
    return ScriptType.NONSTANDARD


def get_nulldata(script: bytes) -> bytes:
    """Concatenated payload of an OP_RETURN script."""
    if not is_nulldata(script):
        raise ScriptError("Not a nulldata script")
    return b"".join(data or b"" for _, data in parse_script(script[1:]))


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def p2sh_script(script_hash: bytes) -> bytes:
    return bytes([OP_HASH160, 0x14]) + script_hash + bytes([OP_EQUAL])


def p2wpkh_script(pubkey_hash: bytes) -> bytes:
    return bytes([OP_0, 0x14]) + pubkey_hash


def p2wsh_script(script_hash: bytes) -> bytes:
    return bytes([OP_0, 0x20]) + script_hash


def pubkey_to_p2pkh_script(pubkey: bytes) -> bytes:
    return p2pkh_script(hash160(pubkey))


def pubkey_to_p2wpkh_script(pubkey: bytes) -> bytes:
    return p2wpkh_script(hash160(pubkey))


def script_to_p2sh_script(script: bytes) -> bytes:
    return p2sh_script(hash160(script))


def script_to_p2wsh_script(script: bytes) -> bytes:
    return p2wsh_script(sha256(script))


def multisig_script(m: int, pubkeys: list[bytes]) -> bytes:
    """
    OP_M <pubkey>... OP_N OP_CHECKMULTISIG with keys sorted (BIP67).
    """
    n = len(pubkeys)
    if not 1 <= m <= n <= MAX_MULTISIG_PUBKEYS:
        raise ScriptError(f"Invalid multisig parameters: {m}-of-{n}")

    items: bytes = push_int(m)
    for key in sorted(pubkeys):
        items += push_data(key)
    items += push_int(n)
    items += bytes([OP_CHECKMULTISIG])
    return items


def is_signature_encoding(sig: bytes) -> bool:
    """
    Strict DER signature followed by a single hash type byte (BIP66).
    """
    # Format: 0x30 [total-length] 0x02 [R-length] [R] 0x02 [S-length] [S] [sighash]
    if len(sig) < 9 or len(sig) > 73:
        return False
    if sig[0] != 0x30:
        return False
    if sig[1] != len(sig) - 3:
        return False

    len_r = sig[3]
    if 5 + len_r >= len(sig):
        return False

    len_s = sig[5 + len_r]
    if len_r + len_s + 7 != len(sig):
        return False

    if sig[2] != 0x02 or len_r == 0 or sig[4] & 0x80:
        return False
    if len_r > 1 and sig[4] == 0x00 and not sig[5] & 0x80:
        return False

    if sig[len_r + 4] != 0x02 or len_s == 0 or sig[len_r + 6] & 0x80:
        return False
    if len_s > 1 and sig[len_r + 6] == 0x00 and not sig[len_r + 7] & 0x80:
        return False

    return True
