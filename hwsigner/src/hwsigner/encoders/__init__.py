"""
Vendor request encoders.
"""

from hwsigner.encoders.ledger import LedgerInput, create_ledger_inputs
from hwsigner.encoders.trezor import create_trezor_inputs, get_coin_name, strip_hash_type

__all__ = [
    "LedgerInput",
    "create_ledger_inputs",
    "create_trezor_inputs",
    "get_coin_name",
    "strip_hash_type",
]
