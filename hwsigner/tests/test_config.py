"""
Tests for configuration, vendor parsing and the event emitter.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from hwsigner.config import MemoryOptions, Settings, SignerConfig
from hwsigner.errors import HWSignerError, NotOpenError, SignerError, VendorDisabledError
from hwsigner.events import EventEmitter
from hwsigner.models import NetworkType, Vendor, parse_vendor, parse_vendors


class TestVendorParsing:
    def test_all_is_hardware_only(self):
        assert parse_vendors("ALL") == {Vendor.LEDGER, Vendor.TREZOR}
        assert parse_vendors("all") == {Vendor.LEDGER, Vendor.TREZOR}

    def test_single_and_list(self):
        assert parse_vendors("trezor") == {Vendor.TREZOR}
        assert parse_vendors(["LEDGER", Vendor.MEMORY]) == {Vendor.LEDGER, Vendor.MEMORY}
        assert parse_vendor(Vendor.LEDGER) is Vendor.LEDGER

    def test_unknown_vendor(self):
        with pytest.raises(VendorDisabledError):
            parse_vendor("KEEPKEY")

    def test_empty_list(self):
        with pytest.raises(VendorDisabledError):
            parse_vendors([])


class TestSignerConfig:
    def test_defaults(self):
        config = SignerConfig()

        assert config.vendor == "ALL"
        assert config.network == NetworkType.MAINNET
        assert config.enabled_vendors == {Vendor.LEDGER, Vendor.TREZOR}
        assert config.ledger.timeout == 5000
        assert config.ledger.managed is True
        assert config.trezor.debug is False

    def test_network_string(self):
        assert SignerConfig(network="signet").network == NetworkType.SIGNET

    def test_invalid_vendor(self):
        with pytest.raises(ValidationError):
            SignerConfig(vendor="KEEPKEY")
        with pytest.raises(ValidationError):
            SignerConfig(vendor=[])

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            SignerConfig(ledger={"timeout": 0})


class TestMemoryOptions:
    def test_seed_hex_normalized(self):
        assert MemoryOptions(seed_hex="AB" * 32).seed_hex == "ab" * 32

    @pytest.mark.parametrize("seed_hex", ["zz", "ab" * 8 + "a", "ab" * 15, "ab" * 65])
    def test_invalid_seed_hex(self, seed_hex):
        with pytest.raises(ValidationError):
            MemoryOptions(seed_hex=seed_hex)

    def test_single_seed_source(self):
        with pytest.raises(ValidationError):
            MemoryOptions(mnemonic="abandon about", seed_hex="ab" * 32)


class TestSettings:
    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HWSIGNER_NETWORK", "testnet")
        monkeypatch.setenv("HWSIGNER_VENDOR", "LEDGER")
        monkeypatch.setenv("HWSIGNER_LEDGER_TIMEOUT", "9000")
        monkeypatch.setenv("HWSIGNER_LEDGER_TRANSPORT", "myusb:create")

        settings = Settings()

        assert settings.network == "testnet"
        assert settings.vendor == "LEDGER"
        assert settings.ledger_timeout == 9000
        assert settings.ledger_transport == "myusb:create"

    def test_invalid_network(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HWSIGNER_NETWORK", "litecoin")

        with pytest.raises(ValidationError):
            Settings()


class TestErrors:
    def test_codes(self):
        assert NotOpenError().code == "NOT_OPEN"
        assert str(NotOpenError()) == "Not open."
        assert isinstance(VendorDisabledError("x"), HWSignerError)

    def test_signer_error(self):
        error = SignerError("TREZOR", "Cancelled", {"method": "sign_message"})

        assert str(error) == "TREZOR: Cancelled"
        assert error.code == "SIGNER"
        assert error.context == {"method": "sign_message"}
        assert SignerError("LEDGER", "Locked").context == {}


class TestEventEmitter:
    def test_listeners_run_in_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on("connect", lambda device: calls.append(("first", device)))
        emitter.on("connect", lambda device: calls.append(("second", device)))

        emitter.emit("connect", "d1")

        assert calls == [("first", "d1"), ("second", "d1")]
        assert emitter.listener_count("connect") == 2

    def test_off(self):
        emitter = EventEmitter()
        calls = []

        def listener(device):
            calls.append(device)

        emitter.on("select", listener)
        emitter.off("select", listener)
        emitter.off("select", listener)
        emitter.emit("select", "d1")

        assert calls == []

    def test_listener_may_unsubscribe_while_called(self):
        emitter = EventEmitter()
        calls = []

        def once(device):
            calls.append(device)
            emitter.off("connect", once)

        emitter.on("connect", once)
        emitter.emit("connect", "d1")
        emitter.emit("connect", "d2")

        assert calls == ["d1"]

    def test_exceptions_propagate(self):
        emitter = EventEmitter()

        def broken(device):
            raise RuntimeError("listener failed")

        emitter.on("connect", broken)
        with pytest.raises(RuntimeError):
            emitter.emit("connect", "d1")

    def test_remove_all_listeners(self):
        emitter = EventEmitter()
        emitter.on("connect", print)
        emitter.on("select", print)

        emitter.remove_all_listeners("connect")
        assert emitter.listener_count("connect") == 0
        assert emitter.listener_count("select") == 1

        emitter.remove_all_listeners()
        assert emitter.listener_count("select") == 0
