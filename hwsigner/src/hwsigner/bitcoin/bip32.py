"""
BIP32 HD key derivation.

HDKey holds a private node (used by the memory signer), HDPublicKey a public
node (what the hardware signers return and what cosigner xpubs decode to).
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

import base58
from coincurve import PrivateKey, PublicKey

from hwsigner.bitcoin.networks import Network, get_network, networks_for_xpub_prefix
from hwsigner.bitcoin.script import hash160
from hwsigner.constants import HARDENED
from hwsigner.models import NetworkType
from hwsigner.path import PathLike, parse_path

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


class HDKeyError(Exception):
    pass


def _fingerprint(public_key: bytes) -> int:
    return int.from_bytes(hash160(public_key)[:4], "big")


def _serialize(
    version: int,
    depth: int,
    parent_fingerprint: int,
    child_index: int,
    chain_code: bytes,
    key_data: bytes,
) -> str:
    raw = (
        version.to_bytes(4, "big")
        + bytes([depth])
        + parent_fingerprint.to_bytes(4, "big")
        + child_index.to_bytes(4, "big")
        + chain_code
        + key_data
    )
    return base58.b58encode_check(raw).decode("ascii")


class HDPublicKey:
    """
    BIP32 extended public key.

    ``parent_fingerprint`` is None when the signer did not report one.
    """

    def __init__(
        self,
        public_key: bytes,
        chain_code: bytes,
        depth: int = 0,
        child_index: int = 0,
        parent_fingerprint: int | None = None,
    ):
        if len(public_key) != 33:
            raise HDKeyError(f"Invalid compressed pubkey length: {len(public_key)}")
        if len(chain_code) != 32:
            raise HDKeyError(f"Invalid chain code length: {len(chain_code)}")

        self.public_key = public_key
        self.chain_code = chain_code
        self.depth = depth
        self.child_index = child_index
        self.parent_fingerprint = parent_fingerprint

    @property
    def fingerprint(self) -> int:
        return _fingerprint(self.public_key)

    def derive_child(self, index: int) -> HDPublicKey:
        if index & HARDENED:
            raise HDKeyError("Cannot derive hardened child from public key")

        data = self.public_key + index.to_bytes(4, "big")
        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        if int.from_bytes(key_offset, "big") >= SECP256K1_N:
            raise HDKeyError("Invalid child key")

        parent = PublicKey(self.public_key)
        child = parent.add(key_offset)

        return HDPublicKey(
            child.format(compressed=True),
            child_chain,
            depth=self.depth + 1,
            child_index=index,
            parent_fingerprint=self.fingerprint,
        )

    def derive_path(self, path: PathLike) -> HDPublicKey:
        """Derive along a relative, unhardened path."""
        key = self
        for index in parse_path(path):
            key = key.derive_child(index)
        return key

    def to_base58(self, network: str | NetworkType | Network = "main") -> str:
        net = get_network(network)
        return _serialize(
            net.xpub_prefix,
            self.depth,
            self.parent_fingerprint or 0,
            self.child_index,
            self.chain_code,
            self.public_key,
        )

    @classmethod
    def from_base58(
        cls, xpub: str, network: str | NetworkType | Network | None = None
    ) -> HDPublicKey:
        """
        Decode an xpub.

        With a ``network`` the version bytes must match it; otherwise any
        known version is accepted.
        """
        try:
            raw = base58.b58decode_check(xpub)
        except ValueError as e:
            raise HDKeyError(f"Invalid extended key: {e}") from e

        if len(raw) != 78:
            raise HDKeyError(f"Invalid extended key length: {len(raw)}")

        version = int.from_bytes(raw[:4], "big")
        if network is not None:
            if version != get_network(network).xpub_prefix:
                raise HDKeyError(f"Extended key version {version:#010x} does not match network")
        elif not networks_for_xpub_prefix(version):
            raise HDKeyError(f"Unknown extended key version: {version:#010x}")

        return cls(
            public_key=raw[45:78],
            chain_code=raw[13:45],
            depth=raw[4],
            child_index=int.from_bytes(raw[9:13], "big"),
            parent_fingerprint=int.from_bytes(raw[5:9], "big"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "depth": self.depth,
            "child_index": self.child_index,
            "chain_code": self.chain_code.hex(),
            "public_key": self.public_key.hex(),
            "parent_fingerprint": self.parent_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HDPublicKey:
        return cls(
            public_key=bytes.fromhex(data["public_key"]),
            chain_code=bytes.fromhex(data["chain_code"]),
            depth=int(data["depth"]),
            child_index=int(data["child_index"]),
            parent_fingerprint=data.get("parent_fingerprint"),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HDPublicKey):
            return NotImplemented
        return (
            self.public_key == other.public_key
            and self.chain_code == other.chain_code
            and self.depth == other.depth
            and self.child_index == other.child_index
        )

    def __repr__(self) -> str:
        return f"<HDPublicKey depth={self.depth} public_key={self.public_key.hex()}>"


class HDKey:
    """
    Hierarchical Deterministic private key.
    Implements BIP32 derivation.
    """

    def __init__(
        self,
        private_key: PrivateKey,
        chain_code: bytes,
        depth: int = 0,
        child_index: int = 0,
        parent_fingerprint: int = 0,
    ):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth
        self.child_index = child_index
        self.parent_fingerprint = parent_fingerprint

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def fingerprint(self) -> int:
        return _fingerprint(self.get_public_key_bytes())

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        if not 16 <= len(seed) <= 64:
            raise HDKeyError(f"Invalid seed length: {len(seed)}")

        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        private_key = PrivateKey(key_bytes)

        return cls(private_key, chain_code, depth=0)

    def derive(self, path: PathLike) -> HDKey:
        """Derive child key from a path ("m/84'/0'/0'/0/0" or index list)."""
        key = self
        for index in parse_path(path):
            key = key._derive_child(index)
        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        if index & HARDENED:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self.get_public_key_bytes() + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        offset_int = int.from_bytes(key_offset, "big")

        if offset_int >= SECP256K1_N:
            raise HDKeyError("Invalid child key")

        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise HDKeyError("Invalid child key")

        child_private_key = PrivateKey(child_key_int.to_bytes(32, "big"))

        return HDKey(
            child_private_key,
            child_chain,
            depth=self.depth + 1,
            child_index=index,
            parent_fingerprint=self.fingerprint,
        )

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def to_public(self) -> HDPublicKey:
        return HDPublicKey(
            self.get_public_key_bytes(),
            self.chain_code,
            depth=self.depth,
            child_index=self.child_index,
            parent_fingerprint=self.parent_fingerprint,
        )

    def to_base58(self, network: str | NetworkType | Network = "main") -> str:
        net = get_network(network)
        return _serialize(
            net.xprv_prefix,
            self.depth,
            self.parent_fingerprint,
            self.child_index,
            self.chain_code,
            b"\x00" + self.get_private_key_bytes(),
        )


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Convert BIP39 mnemonic to seed.
    The word list checksum is not verified.
    """
    from hashlib import pbkdf2_hmac

    mnemonic_bytes = " ".join(mnemonic.split()).encode("utf-8")
    salt = ("mnemonic" + passphrase).encode("utf-8")

    seed = pbkdf2_hmac("sha512", mnemonic_bytes, salt, 2048, dklen=64)
    return seed
