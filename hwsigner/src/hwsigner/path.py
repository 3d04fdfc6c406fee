"""
BIP32 derivation paths.

A Path is an immutable sequence of uint32 indices. It can be built from the
textual form ("m/44'/0'/0'/0/0", with ' or h as hardened marker), from a flat
list of integers (hardened indices carry bit 31), or from another Path. The
three forms are interchangeable everywhere a path is accepted.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from typing import Union

import base58

from hwsigner.constants import BIP44_PURPOSE, HARDENED, MAX_PATH_DEPTH
from hwsigner.errors import ConsistencyError, MalformedPathError

PathLike = Union["Path", str, Sequence[int]]

_INDEX_RE = re.compile(r"^\d+$")
_ROOTS = ("m", "M", "m'", "M'")


def harden(index: int) -> int:
    """Set the hardened bit on an index."""
    return (index | HARDENED) & 0xFFFFFFFF


def is_hardened(index: int) -> bool:
    return bool(index & HARDENED)


def _parse_segment(part: str) -> int:
    hardened = part.endswith(("'", "h", "H"))
    if hardened:
        part = part[:-1]

    # Path index too large for a uint32 anyway
    if not _INDEX_RE.match(part) or len(part) > 10:
        raise MalformedPathError(f"Path index is non-numeric: {part!r}")

    index = int(part)
    if index >= HARDENED:
        raise MalformedPathError(f"Path index out of range: {index}")

    return harden(index) if hardened else index


class Path:
    """BIP32 derivation path."""

    __slots__ = ("_list",)

    def __init__(self, indices: Sequence[int] = ()) -> None:
        indices = list(indices)

        if len(indices) > MAX_PATH_DEPTH:
            raise ConsistencyError(f"Path depth {len(indices)} exceeds {MAX_PATH_DEPTH}.")

        for index in indices:
            if isinstance(index, bool) or not isinstance(index, int):
                raise MalformedPathError(f"Path index must be an integer: {index!r}")
            if index < 0 or index > 0xFFFFFFFF:
                raise MalformedPathError(f"Path index out of range: {index}")

        self._list: tuple[int, ...] = tuple(indices)

    @classmethod
    def from_str(cls, text: str) -> Path:
        if not isinstance(text, str) or not text:
            raise MalformedPathError("Path must be a non-empty string.")

        parts = text.strip().split("/")
        if parts[0] not in _ROOTS:
            raise MalformedPathError(f"Invalid path root: {parts[0]!r}")

        # Tolerate a trailing slash ("m/44'/")
        segments = [p for p in parts[1:]]
        if segments and segments[-1] == "":
            segments.pop()

        return cls([_parse_segment(p) for p in segments])

    @classmethod
    def from_list(cls, indices: Sequence[int], hardened: bool = False) -> Path:
        """Create a path from integers, optionally hardening every index."""
        indices = list(indices)
        if hardened:
            for index in indices:
                if isinstance(index, int) and 0 <= index < HARDENED:
                    continue
                raise MalformedPathError(f"Path index out of range: {index}")
            indices = [harden(i) for i in indices]
        return cls(indices)

    @classmethod
    def parse(cls, value: PathLike) -> Path:
        """Parse any accepted path form."""
        if isinstance(value, Path):
            return value
        if isinstance(value, str):
            return cls.from_str(value)
        if isinstance(value, (list, tuple)):
            return cls.from_list(value)
        raise MalformedPathError(f"Could not parse path from {type(value).__name__}.")

    @classmethod
    def from_options(
        cls,
        *,
        account: int | str,
        purpose: int | str = f"{BIP44_PURPOSE}'",
        coin: int | str | None = None,
        network: str | None = None,
        branch: int | str | None = None,
        index: int | str | None = None,
    ) -> Path:
        """
        Build a BIP44-style path.

        Numeric values are used as-is; strings follow the textual segment
        syntax ("44'", "0h", "3"). When ``network`` is given, the hardened
        coin type of that network wins over ``coin``. ``branch`` and
        ``index`` are added together or not at all.
        """
        if network is not None:
            from hwsigner.bitcoin.networks import get_network

            coin = harden(get_network(network).coin_type)

        if coin is None:
            raise MalformedPathError("coin or network is required.")

        indices = [_option_index(purpose), _option_index(coin), _option_index(account)]

        if branch is not None and index is not None:
            indices.append(_option_index(branch))
            indices.append(_option_index(index))

        return cls(indices)

    @classmethod
    def from_account_xpub(cls, xpub: str) -> Path:
        """
        Recover the account path m/44'/coin'/account' of a depth-3 xpub.

        The purpose and coin come from the SLIP-132 version bytes.
        """
        from hwsigner.bitcoin.networks import networks_for_xpub_prefix

        try:
            raw = base58.b58decode_check(xpub)
        except ValueError as e:
            raise MalformedPathError(f"Invalid extended key: {e}") from e

        if len(raw) != 78:
            raise MalformedPathError(f"Invalid extended key length: {len(raw)}")

        networks = networks_for_xpub_prefix(int.from_bytes(raw[:4], "big"))
        if not networks:
            raise MalformedPathError("Unknown extended key prefix.")

        depth = raw[4]
        if depth != 3:
            raise MalformedPathError(f"Expected account key at depth 3, got {depth}.")

        child_index = int.from_bytes(raw[9:13], "big")
        return cls([harden(BIP44_PURPOSE), harden(networks[0].coin_type), child_index])

    def to_list(self) -> list[int]:
        return list(self._list)

    def to_str(self) -> str:
        parts = ["m"]
        for index in self._list:
            if is_hardened(index):
                parts.append(f"{index ^ HARDENED}'")
            else:
                parts.append(str(index))
        return "/".join(parts)

    def push(self, index: int, hardened: bool = False) -> Path:
        """Return a new path with ``index`` appended."""
        if not isinstance(index, int) or index < 0 or index > 0xFFFFFFFF:
            raise MalformedPathError(f"Path index out of range: {index}")
        if hardened:
            index = harden(index)
        return Path([*self._list, index])

    @property
    def depth(self) -> int:
        return len(self._list)

    def __len__(self) -> int:
        return len(self._list)

    def __iter__(self) -> Iterator[int]:
        return iter(self._list)

    def __getitem__(self, item: int) -> int:
        return self._list[item]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Path):
            return self._list == other._list
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._list)

    def __str__(self) -> str:
        return self.to_str()

    def __repr__(self) -> str:
        return f"<Path {self.to_str()}>"


def _option_index(value: int | str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0 or value > 0xFFFFFFFF:
            raise MalformedPathError(f"Path index out of range: {value}")
        return value
    if isinstance(value, str):
        return _parse_segment(value)
    raise MalformedPathError(f"Unexpected path option: {value!r}")


def parse_path(value: PathLike) -> Path:
    """Parse a path given as text, integer list or Path."""
    return Path.parse(value)
