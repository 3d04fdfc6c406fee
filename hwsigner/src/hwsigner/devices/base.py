"""
Base signer device interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger as default_logger

from hwsigner.bitcoin.bip32 import HDPublicKey
from hwsigner.bitcoin.networks import Network, get_network
from hwsigner.bitcoin.transaction import MutableTransaction, Transaction
from hwsigner.errors import DeviceDestroyedError
from hwsigner.inputdata import InputData
from hwsigner.models import NetworkType, Vendor
from hwsigner.path import PathLike

if TYPE_CHECKING:
    from loguru import Logger

InputDataArg = Iterable[InputData | Mapping[str, Any]] | Mapping[str, InputData]


class AbstractDevice(ABC):
    """
    One signer device.

    ``handle`` identifies the current connection, ``key`` the physical
    device. Once destroyed, every operation raises DeviceDestroyedError.
    """

    def __init__(
        self,
        network: str | NetworkType | Network = "main",
        logger: Logger | None = None,
    ):
        self.network = get_network(network)
        self.logger = logger if logger is not None else default_logger
        self.destroyed = False

    @property
    @abstractmethod
    def vendor(self) -> Vendor:
        """Vendor of this device"""

    @property
    @abstractmethod
    def handle(self) -> str:
        """Identifier of the current connection"""

    @property
    @abstractmethod
    def key(self) -> str:
        """Stable identity of the physical device"""

    @property
    @abstractmethod
    def opened(self) -> bool:
        """Whether the device is open"""

    @abstractmethod
    async def open(self) -> None:
        """Open the device"""

    @abstractmethod
    async def close(self) -> None:
        """Close the device"""

    def destroy(self) -> None:
        """Mark the device as gone. Later operations fail."""
        self.check_alive()
        self.destroyed = True

    def check_alive(self) -> None:
        if self.destroyed:
            raise DeviceDestroyedError()

    @abstractmethod
    async def get_public_key(
        self, path: PathLike, include_parent_fingerprint: bool = True
    ) -> HDPublicKey:
        """Extended public key at ``path``"""

    async def get_xpub(self, path: PathLike) -> str:
        """Base58 xpub at ``path`` for the device network."""
        hdkey = await self.get_public_key(path)
        return hdkey.to_base58(self.network)

    @abstractmethod
    async def sign_transaction(
        self, tx: Transaction, input_data: InputDataArg
    ) -> MutableTransaction:
        """Signed transaction with the caller's coins in its view"""

    @abstractmethod
    async def get_signatures(self, tx: Transaction, input_data: InputDataArg) -> list[bytes]:
        """DER signatures with SIGHASH_ALL appended, parallel to ``tx.inputs``"""

    @abstractmethod
    async def sign_message(self, path: PathLike, message: bytes | str) -> bytes:
        """Compact message signature"""

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} vendor={self.vendor.value} handle={self.handle} "
            f"key={self.key} destroyed={self.destroyed}>"
        )
