"""
Tests for input classification.
"""

from __future__ import annotations

import pytest

from hwsigner.bitcoin.script import (
    multisig_script,
    p2pkh_script,
    p2sh_script,
    p2wpkh_script,
    p2wsh_script,
    push_data,
    sha256,
)
from hwsigner.bitcoin.transaction import Coin
from hwsigner.classifier import (
    InputArchetype,
    classify_input,
    is_legacy,
    is_multisig_archetype,
    is_witness,
    trezor_script_type,
)
from hwsigner.errors import AmbiguousNestingError, UnsupportedError

PUBKEY = bytes.fromhex("0330d54fd0dd420a6e5f8d3624f5f3482cae350f79d5f0753bf5beef9c2d91af3c")
HASH20 = bytes(range(20))


def coin(script: bytes) -> Coin:
    return Coin(value=50_000, script=script)


class TestClassifyInput:
    def test_direct_types(self):
        assert classify_input(coin(p2pkh_script(HASH20)), False) == InputArchetype.PUBKEYHASH
        assert classify_input(coin(p2wpkh_script(HASH20)), True) == InputArchetype.WITNESSPUBKEYHASH
        assert (
            classify_input(coin(p2wsh_script(bytes(32))), True)
            == InputArchetype.WITNESSSCRIPTHASH
        )
        assert classify_input(coin(push_data(PUBKEY) + b"\xac"), False) == InputArchetype.PUBKEY

    def test_scripthash_without_witness(self):
        assert classify_input(coin(p2sh_script(HASH20)), False) == InputArchetype.SCRIPTHASH

    def test_nested_p2wpkh_with_witness_stack(self):
        program = p2wpkh_script(HASH20)
        result = classify_input(
            coin(p2sh_script(HASH20)),
            True,
            script_sig=push_data(program),
            witness_stack=[b"\x30" * 71, PUBKEY],
        )
        assert result == InputArchetype.NESTED_P2WPKH

    def test_nested_program_with_empty_witness_is_ambiguous(self):
        program = p2wpkh_script(HASH20)
        with pytest.raises(AmbiguousNestingError):
            classify_input(coin(p2sh_script(HASH20)), True, script_sig=push_data(program))

    def test_nested_p2wsh_from_script_sig(self):
        program = p2wsh_script(bytes(32))
        result = classify_input(
            coin(p2sh_script(HASH20)),
            True,
            script_sig=push_data(program),
            witness_stack=[b""],
        )
        assert result == InputArchetype.NESTED_P2WSH

    def test_unsigned_nested_defaults_to_p2wpkh(self):
        assert classify_input(coin(p2sh_script(HASH20)), True) == InputArchetype.NESTED_P2WPKH

    def test_unsigned_nested_from_redeem(self):
        redeem = multisig_script(1, [PUBKEY])
        scripthash = coin(p2sh_script(HASH20))

        assert classify_input(scripthash, True, redeem=redeem) == InputArchetype.NESTED_P2WSH
        assert (
            classify_input(scripthash, True, redeem=p2wsh_script(sha256(redeem)))
            == InputArchetype.NESTED_P2WSH
        )
        assert (
            classify_input(scripthash, True, redeem=p2wpkh_script(HASH20))
            == InputArchetype.NESTED_P2WPKH
        )
        assert classify_input(scripthash, True, multisig=True) == InputArchetype.NESTED_P2WSH

    def test_unsupported_coin(self):
        with pytest.raises(UnsupportedError):
            classify_input(coin(b"\x6a\x04test"), False)
        with pytest.raises(UnsupportedError):
            classify_input(coin(multisig_script(1, [PUBKEY])), False)


class TestArchetypeHelpers:
    def test_trezor_script_types(self):
        assert trezor_script_type(InputArchetype.PUBKEYHASH) == "SPENDADDRESS"
        assert trezor_script_type(InputArchetype.SCRIPTHASH) == "SPENDMULTISIG"
        assert trezor_script_type(InputArchetype.WITNESSPUBKEYHASH) == "SPENDWITNESS"
        assert trezor_script_type(InputArchetype.WITNESSSCRIPTHASH) == "SPENDWITNESS"
        assert trezor_script_type(InputArchetype.NESTED_P2WPKH) == "SPENDP2SHWITNESS"
        assert trezor_script_type(InputArchetype.NESTED_P2WSH) == "SPENDP2SHWITNESS"

    def test_pubkey_has_no_trezor_type(self):
        with pytest.raises(UnsupportedError):
            trezor_script_type(InputArchetype.PUBKEY)

    def test_legacy_and_witness(self):
        legacy = {InputArchetype.PUBKEY, InputArchetype.PUBKEYHASH, InputArchetype.SCRIPTHASH}
        for archetype in InputArchetype:
            assert is_legacy(archetype) == (archetype in legacy)
            assert is_witness(archetype) == (archetype not in legacy)

    def test_multisig_archetypes(self):
        assert is_multisig_archetype(InputArchetype.SCRIPTHASH)
        assert is_multisig_archetype(InputArchetype.NESTED_P2WSH)
        assert not is_multisig_archetype(InputArchetype.NESTED_P2WPKH)
