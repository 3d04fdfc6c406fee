"""
Bitcoin and signer constants.
"""

from __future__ import annotations

# BIP32 hardened derivation flag
HARDENED = 0x80000000

# Maximum derivation depth that fits the one-byte depth field of an extended key
MAX_PATH_DEPTH = 255

# Consensus limit for OP_CHECKMULTISIG
MAX_MULTISIG_PUBKEYS = 20

# Only SIGHASH_ALL is supported by the signers
SIGHASH_ALL = 0x01

# Default per-exchange timeout for Ledger USB transfers (milliseconds)
DEFAULT_LEDGER_TIMEOUT = 5000

# Default sequence for new inputs
DEFAULT_SEQUENCE = 0xFFFFFFFF

BIP44_PURPOSE = 44

# SLIP-44 coin types per network
BIP44_COIN_TYPES: dict[str, int] = {
    "main": 0,
    "testnet": 1,
    "regtest": 1,
    "simnet": 1,
    "signet": 1,
}
