"""
hwsigner - Bitcoin hardware signer abstraction

One async API for Ledger and Trezor devices (and an in-memory software
signer): device discovery and selection, public key derivation, transaction
and message signing.
"""

__version__ = "0.1.0"

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.transaction import Coin, MutableTransaction, Outpoint, Transaction, TxOutput
from hwsigner.classifier import InputArchetype, classify_input
from hwsigner.config import LedgerOptions, MemoryOptions, SignerConfig, TrezorOptions
from hwsigner.devices import AbstractDevice, LedgerDevice, MemoryDevice, TrezorDevice
from hwsigner.errors import (
    AlreadyOpenError,
    AmbiguousNestingError,
    ConsistencyError,
    DeviceDestroyedError,
    DeviceNotFoundError,
    ExternalInputError,
    HWSignerError,
    MalformedPathError,
    NoDeviceSelectedError,
    NotOpenError,
    SignerError,
    UnsupportedError,
    VendorDisabledError,
    VendorMismatchError,
)
from hwsigner.inputdata import InputData, MultisigInfo, MultisigKey, prepare_sign_options
from hwsigner.managers import (
    LedgerDeviceManager,
    MemoryDeviceManager,
    TrezorDeviceManager,
)
from hwsigner.models import DeviceEvent, NetworkType, Vendor, parse_vendors
from hwsigner.multisig import apply_other_signatures
from hwsigner.path import Path, parse_path
from hwsigner.signer import Signer

__all__ = [
    "AbstractDevice",
    "AlreadyOpenError",
    "AmbiguousNestingError",
    "Coin",
    "ConsistencyError",
    "DeviceDestroyedError",
    "DeviceEvent",
    "DeviceNotFoundError",
    "ExternalInputError",
    "HDPublicKey",
    "HWSignerError",
    "InputArchetype",
    "InputData",
    "LedgerDevice",
    "LedgerDeviceManager",
    "LedgerOptions",
    "MalformedPathError",
    "MemoryDevice",
    "MemoryDeviceManager",
    "MemoryOptions",
    "MultisigInfo",
    "MultisigKey",
    "MutableTransaction",
    "NetworkType",
    "NoDeviceSelectedError",
    "NotOpenError",
    "Outpoint",
    "Path",
    "Signer",
    "SignerConfig",
    "SignerError",
    "Transaction",
    "TrezorDevice",
    "TrezorDeviceManager",
    "TrezorOptions",
    "TxOutput",
    "UnsupportedError",
    "VendorDisabledError",
    "VendorMismatchError",
    "Vendor",
    "apply_other_signatures",
    "classify_input",
    "parse_path",
    "parse_vendors",
    "prepare_sign_options",
]
