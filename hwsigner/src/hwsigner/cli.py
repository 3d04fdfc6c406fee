"""
hwsigner CLI - Derive keys and sign with hardware or software signers.
"""

from __future__ import annotations

import asyncio
import base64
import importlib
import json
import sys
from pathlib import Path as FilePath
from typing import Any

import typer
from loguru import logger

from hwsigner.bitcoin.address import pubkey_to_address
from hwsigner.bitcoin.networks import get_network
from hwsigner.bitcoin.transaction import Transaction
from hwsigner.config import LedgerOptions, MemoryOptions, SignerConfig, TrezorOptions, get_settings
from hwsigner.errors import DeviceNotFoundError
from hwsigner.inputdata import InputData
from hwsigner.models import Vendor
from hwsigner.path import Path
from hwsigner.signer import Signer

app = typer.Typer(
    name="hwsigner",
    help="Bitcoin hardware signer tool",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def load_factory(target: str) -> Any:
    """Call the ``module:factory`` callable named by ``target`` and return its result."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Transport must look like module:factory, got {target!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    return factory()


def build_signer(
    vendor: str | None = None,
    network: str | None = None,
    mnemonic: str | None = None,
    passphrase: str | None = None,
    ledger_transport: str | None = None,
    trezor_transport: str | None = None,
) -> Signer:
    """Signer from the command line options, falling back to HWSIGNER_* settings."""
    settings = get_settings()

    config = SignerConfig(
        vendor=vendor or settings.vendor,
        network=get_network(network or settings.network).type,
        ledger=LedgerOptions(timeout=settings.ledger_timeout, managed=settings.ledger_managed),
        trezor=TrezorOptions(debug=settings.trezor_debug),
        memory=MemoryOptions(
            mnemonic=mnemonic or settings.mnemonic,
            passphrase=passphrase if passphrase is not None else settings.passphrase,
        ),
    )

    enabled = config.enabled_vendors
    ledger_usb = None
    trezor_bridge = None

    if Vendor.LEDGER in enabled:
        target = ledger_transport or settings.ledger_transport
        if not target:
            raise ValueError("Ledger needs --ledger-transport module:factory")
        ledger_usb = load_factory(target)

    if Vendor.TREZOR in enabled:
        target = trezor_transport or settings.trezor_transport
        if not target:
            raise ValueError("Trezor needs --trezor-transport module:factory")
        trezor_bridge = load_factory(target)

    return Signer(config, ledger_usb=ledger_usb, trezor_bridge=trezor_bridge)


async def open_signer(signer: Signer) -> None:
    """Open the signer and select the first available device."""
    await signer.open()

    if len(signer.vendors) == 1:
        await signer.select_device()
        return

    devices = signer.get_devices()
    if not devices:
        raise DeviceNotFoundError("No devices connected.")
    await signer.select_device(devices[0])


@app.command()
def pubkey(
    path: str | None = typer.Option(None, "--path", "-p", help="BIP32 path, e.g. m/84'/0'/0'"),
    account: int = typer.Option(0, "--account", "-a", help="Account, used without --path"),
    purpose: str = typer.Option("84'", "--purpose", help="Purpose, used without --path"),
    vendor: str | None = typer.Option(None, "--vendor", "-v", help="ALL, LEDGER, TREZOR, MEMORY"),
    network: str | None = typer.Option(None, "--network", "-n", help="Bitcoin network"),
    mnemonic: str | None = typer.Option(None, "--mnemonic", help="Memory signer mnemonic"),
    passphrase: str | None = typer.Option(None, "--passphrase", help="BIP39 passphrase"),
    ledger_transport: str | None = typer.Option(None, "--ledger-transport"),
    trezor_transport: str | None = typer.Option(None, "--trezor-transport"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Show the extended public key and first addresses of an account."""
    setup_logging(log_level)

    try:
        signer = build_signer(
            vendor, network, mnemonic, passphrase, ledger_transport, trezor_transport
        )
        if path is None:
            key_path = Path.from_options(
                purpose=purpose, account=f"{account}'", network=signer.network.name
            )
        else:
            key_path = Path.parse(path)

        result = asyncio.run(_get_pubkey(signer, key_path))
    except Exception as e:
        logger.error(f"Failed to get public key: {e}")
        raise typer.Exit(1)

    typer.echo(json.dumps(result, indent=2))


async def _get_pubkey(signer: Signer, path: Path) -> dict[str, Any]:
    await open_signer(signer)
    try:
        hdkey = await signer.get_public_key(path)
        network = signer.network

        addresses = {}
        for name, branch in (("receive", 0), ("change", 1)):
            child = hdkey.derive_path([branch, 0])
            addresses[name] = {
                "legacy": pubkey_to_address(child.public_key, network, witness=False),
                "segwit": pubkey_to_address(child.public_key, network, witness=True),
            }

        return {
            "path": str(path),
            "xpub": hdkey.to_base58(network),
            "public_key": hdkey.public_key.hex(),
            "fingerprint": f"{hdkey.fingerprint:08x}",
            **addresses,
        }
    finally:
        await signer.close()


@app.command()
def sign_message(
    message: str = typer.Argument(..., help="Message to sign"),
    path: str = typer.Option(..., "--path", "-p", help="BIP32 path of the signing key"),
    vendor: str | None = typer.Option(None, "--vendor", "-v"),
    network: str | None = typer.Option(None, "--network", "-n"),
    mnemonic: str | None = typer.Option(None, "--mnemonic"),
    passphrase: str | None = typer.Option(None, "--passphrase"),
    ledger_transport: str | None = typer.Option(None, "--ledger-transport"),
    trezor_transport: str | None = typer.Option(None, "--trezor-transport"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Sign a message, printing the base64 compact signature."""
    setup_logging(log_level)

    try:
        signer = build_signer(
            vendor, network, mnemonic, passphrase, ledger_transport, trezor_transport
        )
        signature = asyncio.run(_sign_message(signer, Path.parse(path), message))
    except Exception as e:
        logger.error(f"Failed to sign message: {e}")
        raise typer.Exit(1)

    typer.echo(base64.b64encode(signature).decode("ascii"))


async def _sign_message(signer: Signer, path: Path, message: str) -> bytes:
    await open_signer(signer)
    try:
        return await signer.sign_message(path, message)
    finally:
        await signer.close()


@app.command()
def sign_tx(
    request_file: FilePath = typer.Argument(..., help='JSON file: {"tx": hex, "inputs": [...]}'),
    signatures: bool = typer.Option(
        False, "--signatures", help="Print input signatures instead of the signed transaction"
    ),
    vendor: str | None = typer.Option(None, "--vendor", "-v"),
    network: str | None = typer.Option(None, "--network", "-n"),
    mnemonic: str | None = typer.Option(None, "--mnemonic"),
    passphrase: str | None = typer.Option(None, "--passphrase"),
    ledger_transport: str | None = typer.Option(None, "--ledger-transport"),
    trezor_transport: str | None = typer.Option(None, "--trezor-transport"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Sign a transaction described by a JSON request file."""
    setup_logging(log_level)

    if not request_file.exists():
        logger.error(f"Request file not found: {request_file}")
        raise typer.Exit(1)

    try:
        request = json.loads(request_file.read_text())
        tx = Transaction.from_hex(request["tx"])
        inputs = [InputData.from_json(item) for item in request["inputs"]]

        signer = build_signer(
            vendor, network, mnemonic, passphrase, ledger_transport, trezor_transport
        )
        result = asyncio.run(_sign_tx(signer, tx, inputs, signatures))
    except Exception as e:
        logger.error(f"Failed to sign transaction: {e}")
        raise typer.Exit(1)

    typer.echo(result)


async def _sign_tx(signer: Signer, tx: Transaction, inputs: list[InputData], raw: bool) -> str:
    await open_signer(signer)
    try:
        if raw:
            sigs = await signer.get_signatures(tx, inputs)
            return json.dumps([sig.hex() for sig in sigs], indent=2)

        mtx = await signer.sign_transaction(tx, inputs)
        return mtx.to_hex()
    finally:
        await signer.close()


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
