"""
Ledger input descriptors.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from hwsigner.bitcoin.transaction import Coin, Transaction, to_immutable
from hwsigner.classifier import classify_input, is_legacy, is_witness
from hwsigner.errors import ConsistencyError
from hwsigner.inputdata import InputData, get_input_data
from hwsigner.multisig import NetworkArg, get_redeem_script


@dataclass
class LedgerInput:
    """What the Ledger app needs to sign one input."""

    witness: bool
    redeem: bytes | None
    coin: Coin
    path: list[int]
    index: int
    ref_tx: Transaction | None = None


def create_ledger_inputs(
    tx: Transaction,
    input_data: Mapping[str, InputData],
    network: NetworkArg,
) -> list[LedgerInput]:
    ledger_inputs = []

    for inp, data in zip(tx.inputs, get_input_data(tx, input_data)):
        archetype = classify_input(
            data.coin,
            data.witness,
            redeem=data.redeem,
            multisig=data.multisig is not None,
            script_sig=inp.script,
            witness_stack=inp.witness,
        )

        redeem = data.redeem
        if redeem is None and data.multisig is not None:
            redeem = get_redeem_script(data, network)

        ref_tx = to_immutable(data.prev_tx) if data.prev_tx is not None else None
        if ref_tx is None and is_legacy(archetype):
            raise ConsistencyError(f"Reference transaction required for input {data.to_key()}.")

        ledger_inputs.append(
            LedgerInput(
                witness=is_witness(archetype),
                redeem=redeem,
                coin=data.coin,
                path=data.path.to_list(),
                index=inp.prevout.index,
                ref_tx=ref_tx,
            )
        )

    return ledger_inputs
