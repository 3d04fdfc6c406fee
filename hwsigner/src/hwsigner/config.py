"""
Signer configuration.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hwsigner.constants import DEFAULT_LEDGER_TIMEOUT
from hwsigner.errors import VendorDisabledError
from hwsigner.models import NetworkType, Vendor, parse_vendors


class LedgerOptions(BaseModel):
    """Ledger device options."""

    timeout: int = Field(
        default=DEFAULT_LEDGER_TIMEOUT, gt=0, description="USB exchange timeout in milliseconds"
    )
    # Managed: the app client owns open/close of the USB connection
    managed: bool = True


class TrezorOptions(BaseModel):
    """Trezor bridge options."""

    debug: bool = False
    manifest_email: str = ""
    manifest_app_url: str = ""


class MemoryOptions(BaseModel):
    """
    Software signer options.

    The initial device is created from ``mnemonic`` (with ``passphrase``),
    from ``seed_hex``, or from a random seed when both are unset.
    """

    mnemonic: str | None = None
    passphrase: str = ""
    seed_hex: str | None = None

    @field_validator("seed_hex")
    @classmethod
    def validate_seed_hex(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            seed = bytes.fromhex(v)
        except ValueError as e:
            raise ValueError(f"seed_hex is not hex: {e}") from e
        if not 16 <= len(seed) <= 64:
            raise ValueError(f"seed must be 16 to 64 bytes, got {len(seed)}")
        return v.lower()

    @model_validator(mode="after")
    def check_single_source(self) -> MemoryOptions:
        if self.mnemonic is not None and self.seed_hex is not None:
            raise ValueError("Provide either mnemonic or seed_hex, not both")
        return self


class SignerConfig(BaseModel):
    """Configuration of the unified signer."""

    # "ALL" (hardware vendors), a vendor name, or a list of names
    vendor: str | list[str] = "ALL"
    network: NetworkType = NetworkType.MAINNET

    ledger: LedgerOptions = Field(default_factory=LedgerOptions)
    trezor: TrezorOptions = Field(default_factory=TrezorOptions)
    memory: MemoryOptions = Field(default_factory=MemoryOptions)

    @field_validator("vendor")
    @classmethod
    def validate_vendor(cls, v: str | list[str]) -> str | list[str]:
        try:
            parse_vendors(v)
        except VendorDisabledError as e:
            raise ValueError(str(e)) from e
        return v

    @property
    def enabled_vendors(self) -> set[Vendor]:
        return parse_vendors(self.vendor)


class Settings(BaseSettings):
    """CLI settings, read from HWSIGNER_* environment variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="HWSIGNER_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: Literal["mainnet", "testnet", "signet", "regtest", "simnet"] = "mainnet"
    vendor: str = "MEMORY"
    log_level: str = "INFO"

    mnemonic: str | None = None
    passphrase: str = ""

    ledger_timeout: int = DEFAULT_LEDGER_TIMEOUT
    ledger_managed: bool = True
    trezor_debug: bool = False

    # "module:factory" returning a LedgerUSB / TrezorBridge instance
    ledger_transport: str | None = None
    trezor_transport: str | None = None


def get_settings() -> Settings:
    return Settings()
