"""
Tests for the Ledger and Trezor request encoders.
"""

from __future__ import annotations

import pytest
from conftest import funding_tx, spending_tx

from hwsigner.bitcoin.bip32 import HDKey
from hwsigner.bitcoin.script import (
    multisig_script,
    p2sh_script,
    script_to_p2wsh_script,
    sha256,
)
from hwsigner.bitcoin.signing import sign_hash
from hwsigner.bitcoin.transaction import Outpoint, Transaction, TxInput, TxOutput
from hwsigner.encoders import (
    create_ledger_inputs,
    create_trezor_inputs,
    get_coin_name,
    strip_hash_type,
)
from hwsigner.encoders.trezor import process_output, sort_keys, tx_to_trezor
from hwsigner.errors import ConsistencyError, ExternalInputError, UnsupportedError
from hwsigner.inputdata import InputData, MultisigInfo, MultisigKey, prepare_sign_options
from hwsigner.path import Path


def der_signature(key: HDKey, message: bytes = b"hwsigner") -> bytes:
    """DER signature with the SIGHASH_ALL byte appended."""
    return sign_hash(sha256(message), key.private_key)


@pytest.fixture
def cosigners(master_key: HDKey) -> list[tuple[HDKey, MultisigKey]]:
    """Three cosigner account keys with the child each one signs with."""
    result = []
    for account in range(3):
        account_key = master_key.derive(f"m/48'/0'/{account}'/2'")
        child = account_key.derive("m/0/0")
        signature = der_signature(child, bytes([account]))
        result.append(
            (
                child,
                MultisigKey(
                    xpub=account_key.to_public().to_base58("main"),
                    path=Path.from_str("m/0/0"),
                    signature=signature.hex(),
                ),
            )
        )
    return result


class TestStripHashType:
    def test_strips_sighash_from_der(self, p2wpkh_key: HDKey):
        signature = der_signature(p2wpkh_key)
        assert signature[-1] == 0x01
        assert strip_hash_type(signature.hex()) == signature[:-1].hex()

    def test_plain_der_unchanged(self, p2wpkh_key: HDKey):
        der = der_signature(p2wpkh_key)[:-1]
        assert strip_hash_type(der.hex()) == der.hex()

    def test_empty(self):
        assert strip_hash_type("") == ""

    def test_invalid(self):
        with pytest.raises(ConsistencyError):
            strip_hash_type("deadbeef")
        with pytest.raises(ConsistencyError):
            strip_hash_type("zz")


class TestCoinName:
    def test_mainnet(self):
        assert get_coin_name("main") == "Bitcoin"

    @pytest.mark.parametrize("network", ["testnet", "regtest", "signet", "simnet"])
    def test_everything_else_is_testnet(self, network):
        assert get_coin_name(network) == "Testnet"


class TestMultisigSort:
    def test_sorted_by_derived_key(self, cosigners):
        ordered = sorted(cosigners, key=lambda c: c[0].get_public_key_bytes())
        c, a, b = ordered
        multisig = MultisigInfo(m=2, pubkeys=[a[1], b[1], c[1]])

        assert sort_keys(multisig, "main") == [c[1], a[1], b[1]]

    def test_request_lists_keys_and_signatures_in_sorted_order(self, cosigners):
        ordered = sorted(cosigners, key=lambda c: c[0].get_public_key_bytes())
        c, a, b = ordered
        multisig = MultisigInfo(m=2, pubkeys=[a[1], b[1], c[1]])

        redeem = multisig_script(2, [child.get_public_key_bytes() for child, _ in cosigners])
        prev = funding_tx(script_to_p2wsh_script(redeem))
        tx = spending_tx(prev)

        data = InputData(
            path=Path.from_str("m/48'/0'/0'/2'/0/0"),
            prevout=Outpoint(prev.txid(), 0),
            output=prev.outputs[0],
            witness=True,
            multisig=multisig,
        )
        request = create_trezor_inputs(tx, prepare_sign_options([data]), "main")

        trezor_input = request["inputs"][0]
        assert trezor_input["script_type"] == "SPENDWITNESS"
        assert request["refTxs"] == []

        result = trezor_input["multisig"]
        assert result["m"] == 2
        assert [pk["node"] for pk in result["pubkeys"]] == [c[1].xpub, a[1].xpub, b[1].xpub]
        assert all(pk["address_n"] == [0, 0] for pk in result["pubkeys"])
        assert result["signatures"] == [
            bytes.fromhex(key.signature)[:-1].hex() for key in (c[1], a[1], b[1])
        ]


class TestTrezorRequest:
    def test_legacy_inputs_share_one_ref_tx(self, p2pkh_script):
        prev = Transaction(
            inputs=[TxInput(Outpoint("22" * 32, 1), script=b"\x51")],
            outputs=[TxOutput(40_000, p2pkh_script), TxOutput(60_000, p2pkh_script)],
        )
        tx = Transaction(
            inputs=[TxInput(Outpoint(prev.txid(), 0)), TxInput(Outpoint(prev.txid(), 1))],
            outputs=[TxOutput(99_000, p2pkh_script)],
            locktime=700_000,
        )
        inputs = [
            {"path": "m/44'/0'/0'/0/0", "prevout": Outpoint(prev.txid(), i), "prev_tx": prev}
            for i in range(2)
        ]

        request = create_trezor_inputs(tx, prepare_sign_options(inputs), "main")

        assert request["version"] == 2
        assert request["lock_time"] == 700_000
        assert request["inputs_count"] == 2
        assert request["outputs_count"] == 1
        assert [inp["script_type"] for inp in request["inputs"]] == ["SPENDADDRESS"] * 2
        assert [inp["amount"] for inp in request["inputs"]] == ["40000", "60000"]
        assert request["inputs"][0]["address_n"] == Path.from_str("m/44'/0'/0'/0/0").to_list()
        assert request["outputs"][0]["address"] == "1LqBGSKuX5yYUonjxT5qGfpUsXKYYWeabA"

        assert len(request["refTxs"]) == 1
        assert request["refTxs"][0] == tx_to_trezor(prev)

    def test_ref_tx_format(self, p2pkh_script):
        prev = Transaction(
            version=1,
            inputs=[TxInput(Outpoint("ab" * 32, 3), script=b"\x51", sequence=0xFFFFFFFE)],
            outputs=[TxOutput(1_000, p2pkh_script)],
            locktime=5,
        )

        assert tx_to_trezor(prev) == {
            "hash": prev.txid(),
            "version": 1,
            "lock_time": 5,
            "inputs": [
                {
                    "prev_hash": "ab" * 32,
                    "prev_index": 3,
                    "sequence": 0xFFFFFFFE,
                    "script_sig": "51",
                }
            ],
            "bin_outputs": [{"amount": 1_000, "script_pubkey": p2pkh_script.hex()}],
        }

    def test_legacy_input_without_ref_tx(self, p2pkh_script):
        prev = funding_tx(p2pkh_script)
        tx = spending_tx(prev)

        # Witness flag set on a P2PKH coin: prev_tx is optional but still needed
        data = InputData(
            path=Path.from_str("m/44'/0'/0'/0/0"),
            prevout=Outpoint(prev.txid(), 0),
            output=prev.outputs[0],
            witness=True,
        )

        with pytest.raises(ConsistencyError):
            create_trezor_inputs(tx, prepare_sign_options([data]), "main")

    def test_witness_input(self, p2wpkh_script):
        prev = funding_tx(p2wpkh_script)
        tx = spending_tx(prev)
        data = {
            "path": "m/84'/0'/0'/0/0",
            "coin": {
                "txid": prev.txid(),
                "index": 0,
                "value": 100_000,
                "script": p2wpkh_script.hex(),
            },
            "witness": True,
        }

        request = create_trezor_inputs(tx, prepare_sign_options([data]), "main")

        assert request["inputs"][0] == {
            "prev_hash": prev.txid(),
            "prev_index": 0,
            "sequence": 0xFFFFFFFF,
            "script_type": "SPENDWITNESS",
            "address_n": Path.from_str("m/84'/0'/0'/0/0").to_list(),
            "amount": "100000",
        }
        assert request["outputs"][0]["script_type"] == "PAYTOWITNESS"
        assert request["refTxs"] == []

    def test_p2sh_without_multisig_unsupported(self):
        prev = funding_tx(p2sh_script(bytes(20)))
        tx = spending_tx(prev)
        data = {"path": "m/49'/0'/0'/0/0", "prevout": Outpoint(prev.txid(), 0), "prev_tx": prev}

        with pytest.raises(UnsupportedError):
            create_trezor_inputs(tx, prepare_sign_options([data]), "main")

    def test_missing_input_data(self, p2wpkh_script):
        tx = spending_tx(funding_tx(p2wpkh_script))
        with pytest.raises(ExternalInputError):
            create_trezor_inputs(tx, {}, "main")


class TestTrezorOutputs:
    def test_op_return(self):
        output = process_output(TxOutput(0, b"\x6a\x04test"), "main")
        assert output == {
            "amount": "0",
            "script_type": "PAYTOOPRETURN",
            "op_return_data": b"test".hex(),
        }

    def test_address_uses_network(self, p2wpkh_script):
        main = process_output(TxOutput(5_000, p2wpkh_script), "main")
        test = process_output(TxOutput(5_000, p2wpkh_script), "testnet")

        assert main["address"] == "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
        assert test["address"].startswith("tb1q")
        assert main["amount"] == "5000"

    def test_bare_multisig_unsupported(self, p2wpkh_key: HDKey):
        script = multisig_script(1, [p2wpkh_key.get_public_key_bytes()])
        with pytest.raises(UnsupportedError):
            process_output(TxOutput(1_000, script), "main")


class TestLedgerInputs:
    def test_witness_and_legacy_inputs(self, p2wpkh_script, p2pkh_script):
        witness_prev = funding_tx(p2wpkh_script, 70_000, tag=0x01)
        legacy_prev = funding_tx(p2pkh_script, 30_000, tag=0x02)
        tx = spending_tx(witness_prev, legacy_prev)

        inputs = [
            {
                "path": "m/84'/0'/0'/0/0",
                "prevout": Outpoint(witness_prev.txid(), 0),
                "output": witness_prev.outputs[0],
                "witness": True,
            },
            {
                "path": "m/44'/0'/0'/0/0",
                "prevout": Outpoint(legacy_prev.txid(), 0),
                "prev_tx": legacy_prev.to_hex(),
            },
        ]

        witness_input, legacy_input = create_ledger_inputs(tx, prepare_sign_options(inputs), "main")

        assert witness_input.witness is True
        assert witness_input.redeem is None
        assert witness_input.coin.value == 70_000
        assert witness_input.path == Path.from_str("m/84'/0'/0'/0/0").to_list()
        assert witness_input.index == 0
        assert witness_input.ref_tx is None

        assert legacy_input.witness is False
        assert legacy_input.ref_tx is not None
        assert legacy_input.ref_tx.txid() == legacy_prev.txid()

    def test_multisig_redeem_rebuilt(self, cosigners):
        multisig = MultisigInfo(m=2, pubkeys=[key for _, key in cosigners])
        redeem = multisig_script(2, [child.get_public_key_bytes() for child, _ in cosigners])
        prev = funding_tx(script_to_p2wsh_script(redeem))
        tx = spending_tx(prev)

        data = InputData(
            path=Path.from_str("m/48'/0'/0'/2'/0/0"),
            prevout=Outpoint(prev.txid(), 0),
            output=prev.outputs[0],
            witness=True,
            multisig=multisig,
        )

        (ledger_input,) = create_ledger_inputs(tx, prepare_sign_options([data]), "main")
        assert ledger_input.redeem == redeem
        assert ledger_input.witness is True

    def test_legacy_input_without_ref_tx(self, p2pkh_script):
        prev = funding_tx(p2pkh_script)
        data = InputData(
            path=Path.from_str("m/44'/0'/0'/0/0"),
            prevout=Outpoint(prev.txid(), 0),
            output=prev.outputs[0],
            witness=True,
        )

        with pytest.raises(ConsistencyError):
            create_ledger_inputs(spending_tx(prev), prepare_sign_options([data]), "main")
