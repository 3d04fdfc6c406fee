"""
Per-vendor device managers.
"""

from hwsigner.managers.base import AbstractDeviceManager, Selector
from hwsigner.managers.ledger import LedgerDeviceManager
from hwsigner.managers.memory import MemoryDeviceManager
from hwsigner.managers.trezor import TrezorDeviceManager

__all__ = [
    "AbstractDeviceManager",
    "LedgerDeviceManager",
    "MemoryDeviceManager",
    "Selector",
    "TrezorDeviceManager",
]
