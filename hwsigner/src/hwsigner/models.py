"""
Shared enums and small value types.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from hwsigner.errors import VendorDisabledError


class Vendor(str, Enum):
    LEDGER = "LEDGER"
    TREZOR = "TREZOR"
    MEMORY = "MEMORY"


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"
    SIMNET = "simnet"


class DeviceEvent(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    SELECT = "select"
    DESELECT = "deselect"


# Vendors enabled by "ALL": the hardware ones
HARDWARE_VENDORS: frozenset[Vendor] = frozenset({Vendor.LEDGER, Vendor.TREZOR})


def parse_vendor(name: str | Vendor) -> Vendor:
    """Parse a vendor name (case-insensitive)."""
    if isinstance(name, Vendor):
        return name

    try:
        return Vendor(name.upper())
    except ValueError:
        raise VendorDisabledError(f'Could not find vendor "{name}".') from None


def parse_vendors(value: str | Vendor | Iterable[str | Vendor]) -> set[Vendor]:
    """
    Parse the ``vendor`` option.

    Accepts "ALL", a single vendor name, or a list of names.
    """
    if isinstance(value, Vendor):
        return {value}

    if isinstance(value, str):
        if value.upper() == "ALL":
            return set(HARDWARE_VENDORS)
        return {parse_vendor(value)}

    vendors = {parse_vendor(name) for name in value}
    if not vendors:
        raise VendorDisabledError("No vendors enabled.")
    return vendors
