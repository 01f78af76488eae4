"""Key management — seed phrases, account keys and viewing-key handles.

The rest of the wallet only ever sees a :class:`ViewingKey`, an opaque
encoded string; nothing outside this module touches key material.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Self

from mnemonic import Mnemonic

from zwallet.errors.storage_errors import StorageError
from zwallet.errors.wallet_errors import WalletError
from zwallet.utils.crypto import key_fingerprint
from zwallet.utils.redact import redact_middle
from zwallet.zcash.address import pubkey_to_transparent_address
from zwallet.zcash.keys import ExtendedKey, account_path
from zwallet.zcash.network import Network

logger = logging.getLogger(__name__)

_WALLET_FILE_VERSION = 1


def viewing_key_id(encoded: str) -> str:
    """SHA-256 hex of an encoded viewing key; the account uniqueness key."""
    return key_fingerprint(encoded)


@dataclass(frozen=True)
class ViewingKey:
    """Opaque viewing-key handle bound to a network."""

    encoded: str
    network: Network

    @property
    def fingerprint(self) -> str:
        return viewing_key_id(self.encoded)

    def __repr__(self) -> str:
        return f"ViewingKey({redact_middle(self.encoded, 8, 6)}, {self.network})"


class ViewingKeyProvider(Protocol):
    """Anything that can hand out the active account's viewing key."""

    def viewing_key(self) -> ViewingKey: ...


class StaticViewingKey:
    """An externally supplied viewing key string (e.g. an exported UFVK)."""

    def __init__(self, encoded: str, network: Network) -> None:
        if not encoded.strip():
            raise WalletError("Viewing key is empty", code="invalid-viewing-key")
        self._key = ViewingKey(encoded=encoded.strip(), network=network)

    def viewing_key(self) -> ViewingKey:
        return self._key


class SeedKeystore:
    """BIP39 seed phrase with a BIP44 account key for one network.

    The account extended public key (``m/44'/coin'/account'``) is the
    viewing-key handle; transparent receiving addresses are derived from its
    external chain.
    """

    def __init__(
        self,
        words: str,
        network: Network,
        *,
        account: int = 0,
        passphrase: str = "",
        birthday_height: int = 0,
    ) -> None:
        self._words = words
        self._network = network
        self._account = account
        self._passphrase = passphrase
        self.birthday_height = birthday_height

        seed = Mnemonic.to_seed(words, passphrase=passphrase)
        master = ExtendedKey.from_seed(seed, testnet=not network.is_mainnet)
        path = account_path(network.params.coin_type, account)
        self._account_xpub = master.derive_path(path).neuter()

    # -- Construction --------------------------------------------------------

    @classmethod
    def generate(cls, network: Network, *, strength: int = 256, **kwargs: Any) -> Self:
        """Create a keystore around a fresh random seed phrase."""
        words = Mnemonic("english").generate(strength=strength)
        return cls(words, network, **kwargs)

    @classmethod
    def from_mnemonic(cls, words: str, network: Network, **kwargs: Any) -> Self:
        """Restore from an existing seed phrase.

        Raises:
            WalletError: If the phrase fails the BIP39 checksum.
        """
        normalized = " ".join(words.split())
        if not Mnemonic("english").check(normalized):
            raise WalletError("Invalid seed phrase", code="invalid-mnemonic")
        return cls(normalized, network, **kwargs)

    @classmethod
    def create(cls, path: str | Path, network: Network, **kwargs: Any) -> Self:
        """Generate a new keystore and write it to *path*.

        Raises:
            StorageError: If *path* already exists or cannot be written.
        """
        target = Path(path).expanduser()
        if target.exists():
            raise StorageError(f"Wallet file already exists: {target}", code="wallet-exists")
        keystore = cls.generate(network, **kwargs)
        keystore.save(target)
        return keystore

    @classmethod
    def load(cls, path: str | Path) -> Self:
        """Read a keystore previously written by :meth:`save`.

        Raises:
            StorageError: If the file is missing or malformed.
        """
        source = Path(path).expanduser()
        try:
            data = json.loads(source.read_text(encoding="utf-8"))
            return cls(
                data["mnemonic"],
                Network.parse(data["network"]),
                account=int(data.get("account", 0)),
                birthday_height=int(data.get("birthday_height", 0)),
            )
        except FileNotFoundError as exc:
            raise StorageError(f"Wallet file not found: {source}", code="wallet-not-found") from exc
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StorageError(f"Wallet file {source} is unreadable: {exc}") from exc

    def save(self, path: str | Path) -> None:
        """Write the keystore as JSON readable only by the owner."""
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": _WALLET_FILE_VERSION,
            "network": str(self._network),
            "account": self._account,
            "birthday_height": self.birthday_height,
            "mnemonic": self._words,
        }
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.chmod(target, 0o600)
        except OSError as exc:
            raise StorageError(f"Failed to write wallet file {target}: {exc}") from exc
        logger.info("Wallet saved to %s", target)

    # -- Accessors -------------------------------------------------------------

    @property
    def network(self) -> Network:
        return self._network

    @property
    def account(self) -> int:
        return self._account

    @property
    def mnemonic(self) -> str:
        return self._words

    def viewing_key(self) -> ViewingKey:
        return ViewingKey(encoded=self._account_xpub.to_string(), network=self._network)

    def transparent_address(self, index: int = 0, *, change: bool = False) -> str:
        """Transparent P2PKH address at ``.../change/index`` under the account key."""
        child = self._account_xpub.derive_child(1 if change else 0).derive_child(index)
        return pubkey_to_transparent_address(child.public_key(), self._network)
