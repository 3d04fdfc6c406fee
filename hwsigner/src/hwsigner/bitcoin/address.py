"""
Address rendering and parsing.

Base58Check for legacy P2PKH/P2SH, bech32 (BIP173) for version 0 witness
programs.
"""

from __future__ import annotations

import base58
import bech32

from hwsigner.bitcoin.networks import NETWORKS, Network, get_network
from hwsigner.bitcoin.script import (
    ScriptType,
    get_script_type,
    hash160,
    p2pkh_script,
    p2sh_script,
    p2wpkh_script,
    p2wsh_script,
    parse_script,
)
from hwsigner.models import NetworkType


class AddressError(Exception):
    pass


def _base58_address(prefix: int, payload: bytes) -> str:
    return base58.b58encode_check(bytes([prefix]) + payload).decode("ascii")


def _bech32_address(hrp: str, program: bytes) -> str:
    result = bech32.encode(hrp, 0, program)
    if result is None:
        raise AddressError(f"Failed to encode witness program: {program.hex()}")
    return result


def script_to_address(script: bytes, network: str | NetworkType | Network = "main") -> str:
    """
    Render the address of an output script.

    Pay-to-pubkey outputs are rendered as the P2PKH address of the key.
    """
    net = get_network(network)
    script_type = get_script_type(script)

    if script_type == ScriptType.PUBKEYHASH:
        return _base58_address(net.pubkeyhash_prefix, script[3:23])
    if script_type == ScriptType.SCRIPTHASH:
        return _base58_address(net.scripthash_prefix, script[2:22])
    if script_type in (ScriptType.WITNESSPUBKEYHASH, ScriptType.WITNESSSCRIPTHASH):
        return _bech32_address(net.bech32_hrp, script[2:])
    if script_type == ScriptType.PUBKEY:
        pubkey = parse_script(script)[0][1] or b""
        return _base58_address(net.pubkeyhash_prefix, hash160(pubkey))

    raise AddressError(f"No address for {script_type.value} script: {script.hex()}")


def address_to_script(address: str, network: str | NetworkType | Network | None = None) -> bytes:
    """
    Parse an address into its output script.

    When ``network`` is None any known network is accepted.
    """
    networks = [get_network(network)] if network is not None else list(NETWORKS.values())

    lowered = address.lower()
    for net in networks:
        if not lowered.startswith(net.bech32_hrp + "1"):
            continue

        witver, witprog = bech32.decode(net.bech32_hrp, address)
        if witver is None or witprog is None:
            raise AddressError(f"Invalid bech32 address: {address}")

        program = bytes(witprog)
        if witver == 0 and len(program) == 20:
            return p2wpkh_script(program)
        if witver == 0 and len(program) == 32:
            return p2wsh_script(program)

        raise AddressError(f"Unsupported witness version: {witver}")

    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise AddressError(f"Invalid address: {address}") from e

    if len(decoded) != 21:
        raise AddressError(f"Invalid address length: {address}")

    version, payload = decoded[0], decoded[1:]
    for net in networks:
        if version == net.pubkeyhash_prefix:
            return p2pkh_script(payload)
        if version == net.scripthash_prefix:
            return p2sh_script(payload)

    raise AddressError(f"Unknown address version: {version}")


def pubkey_to_address(
    pubkey: bytes, network: str | NetworkType | Network = "main", witness: bool = True
) -> str:
    """P2WPKH (default) or P2PKH address of a compressed public key."""
    if len(pubkey) != 33:
        raise AddressError(f"Invalid compressed pubkey length: {len(pubkey)}")

    if witness:
        return script_to_address(p2wpkh_script(hash160(pubkey)), network)
    return script_to_address(p2pkh_script(hash160(pubkey)), network)
