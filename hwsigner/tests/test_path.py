"""
Tests for BIP32 path parsing.
"""

from __future__ import annotations

import pytest

from hwsigner.bitcoin.bip32 import HDKey
from hwsigner.constants import HARDENED
from hwsigner.errors import ConsistencyError, MalformedPathError
from hwsigner.path import Path, harden, is_hardened, parse_path


class TestPathParsing:
    def test_round_trip(self):
        path = Path.from_str("m/44'/0'/0'/0/0")

        assert path.to_list() == [2147483692, 2147483648, 2147483648, 0, 0]
        assert Path.from_list(path.to_list()).to_str() == "m/44'/0'/0'/0/0"
        assert Path.from_list(path.to_list()) == path

    def test_hardened_markers(self):
        assert Path.from_str("m/84h/1H/0'") == Path.from_list([84, 1, 0], hardened=True)

    @pytest.mark.parametrize("text", ["m", "M", "m'", "M'", "m/"])
    def test_roots(self, text):
        assert Path.from_str(text).to_list() == []

    def test_trailing_slash(self):
        assert Path.from_str("m/44'/0'/").to_list() == [harden(44), harden(0)]

    @pytest.mark.parametrize(
        "text",
        ["", "44'/0'", "x/0", "m/a", "m//0", "m/-1", "m/2147483648", "m/0''", "m/99999999999"],
    )
    def test_malformed(self, text):
        with pytest.raises(MalformedPathError):
            Path.from_str(text)

    def test_parse_accepts_all_forms(self):
        path = Path.from_str("m/49'/0'/0'")

        assert parse_path("m/49'/0'/0'") == path
        assert parse_path(path.to_list()) == path
        assert parse_path(tuple(path.to_list())) == path
        assert parse_path(path) is path

    def test_parse_rejects_other_types(self):
        with pytest.raises(MalformedPathError):
            parse_path(44)  # type: ignore[arg-type]

    def test_depth_limit(self):
        Path([0] * 255)
        with pytest.raises(ConsistencyError):
            Path([0] * 256)

    def test_index_range(self):
        with pytest.raises(MalformedPathError):
            Path([0x1_0000_0000])
        with pytest.raises(MalformedPathError):
            Path([-1])
        with pytest.raises(MalformedPathError):
            Path.from_list([HARDENED], hardened=True)


class TestPathHelpers:
    def test_harden(self):
        assert harden(0) == HARDENED
        assert is_hardened(harden(5))
        assert not is_hardened(5)

    def test_push_returns_new_path(self):
        path = Path.from_str("m/84'")
        child = path.push(0, hardened=True).push(1)

        assert path.to_str() == "m/84'"
        assert child.to_str() == "m/84'/0'/1"
        assert child.depth == 3

    def test_str_and_repr(self):
        path = Path.from_str("m/0/1")
        assert str(path) == "m/0/1"
        assert repr(path) == "<Path m/0/1>"

    def test_hashable(self):
        assert len({Path.from_str("m/0"), Path.from_list([0])}) == 1


class TestPathFromOptions:
    def test_account_path_from_network(self):
        path = Path.from_options(purpose="84'", account="0'", network="testnet")
        assert path.to_str() == "m/84'/1'/0'"

    def test_mainnet_default_purpose(self):
        path = Path.from_options(account=harden(2), network="main")
        assert path.to_str() == "m/44'/0'/2'"

    def test_branch_and_index(self):
        path = Path.from_options(account="0'", coin="0'", branch=1, index=7)
        assert path.to_str() == "m/44'/0'/0'/1/7"

    def test_coin_or_network_required(self):
        with pytest.raises(MalformedPathError):
            Path.from_options(account="0'")

    def test_from_account_xpub(self, master_key: HDKey):
        xpub = master_key.derive("m/44'/1'/3'").to_public().to_base58("testnet")
        assert Path.from_account_xpub(xpub).to_str() == "m/44'/1'/3'"

    def test_from_account_xpub_wrong_depth(self, master_key: HDKey):
        xpub = master_key.derive("m/44'/0'").to_public().to_base58("main")
        with pytest.raises(MalformedPathError):
            Path.from_account_xpub(xpub)
