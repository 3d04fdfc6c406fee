"""
Network parameters: address prefixes, bech32 HRPs and extended key versions.
"""

from __future__ import annotations

from dataclasses import dataclass

from hwsigner.constants import BIP44_COIN_TYPES
from hwsigner.models import NetworkType


@dataclass(frozen=True)
class Network:
    type: NetworkType
    pubkeyhash_prefix: int
    scripthash_prefix: int
    bech32_hrp: str
    xpub_prefix: int
    xprv_prefix: int

    @property
    def name(self) -> str:
        """Short name used for coin types ("main", "testnet", ...)."""
        return "main" if self.type == NetworkType.MAINNET else self.type.value

    @property
    def coin_type(self) -> int:
        return BIP44_COIN_TYPES[self.name]


NETWORKS: dict[NetworkType, Network] = {
    NetworkType.MAINNET: Network(
        type=NetworkType.MAINNET,
        pubkeyhash_prefix=0x00,
        scripthash_prefix=0x05,
        bech32_hrp="bc",
        xpub_prefix=0x0488B21E,
        xprv_prefix=0x0488ADE4,
    ),
    NetworkType.TESTNET: Network(
        type=NetworkType.TESTNET,
        pubkeyhash_prefix=0x6F,
        scripthash_prefix=0xC4,
        bech32_hrp="tb",
        xpub_prefix=0x043587CF,
        xprv_prefix=0x04358394,
    ),
    NetworkType.SIGNET: Network(
        type=NetworkType.SIGNET,
        pubkeyhash_prefix=0x6F,
        scripthash_prefix=0xC4,
        bech32_hrp="tb",
        xpub_prefix=0x043587CF,
        xprv_prefix=0x04358394,
    ),
    # Bitcoin Core uses tpub/tprv for regtest as well
    NetworkType.REGTEST: Network(
        type=NetworkType.REGTEST,
        pubkeyhash_prefix=0x6F,
        scripthash_prefix=0xC4,
        bech32_hrp="bcrt",
        xpub_prefix=0x043587CF,
        xprv_prefix=0x04358394,
    ),
    NetworkType.SIMNET: Network(
        type=NetworkType.SIMNET,
        pubkeyhash_prefix=0x3F,
        scripthash_prefix=0x7B,
        bech32_hrp="sb",
        xpub_prefix=0x0420BD3A,
        xprv_prefix=0x0420B900,
    ),
}

# Aliases accepted by get_network
_ALIASES = {
    "main": NetworkType.MAINNET,
    "bitcoin": NetworkType.MAINNET,
    "test": NetworkType.TESTNET,
}


def get_network(value: str | NetworkType | Network) -> Network:
    """Resolve a network name, NetworkType or Network to its parameters."""
    if isinstance(value, Network):
        return value

    if isinstance(value, NetworkType):
        return NETWORKS[value]

    name = value.lower()
    if name in _ALIASES:
        return NETWORKS[_ALIASES[name]]

    try:
        return NETWORKS[NetworkType(name)]
    except ValueError:
        raise ValueError(f"Unknown network: {value}") from None


def networks_for_xpub_prefix(prefix: int) -> list[Network]:
    """Networks whose extended public key version matches ``prefix``."""
    return [net for net in NETWORKS.values() if net.xpub_prefix == prefix]
