"""
Signer device handles.
"""

from hwsigner.devices.base import AbstractDevice
from hwsigner.devices.ledger import LedgerDevice
from hwsigner.devices.memory import MemoryDevice
from hwsigner.devices.trezor import TrezorDevice

__all__ = ["AbstractDevice", "LedgerDevice", "MemoryDevice", "TrezorDevice"]
