"""Credential store backends behind the store service.

A credential is addressed by its ``(service, user)`` pair and holds an
optional secret (raw bytes) plus an attribute map. Two backends exist:

* :class:`MemoryStore` -- volatile, lives as long as the process.
* :class:`EncryptedFileStore` -- Fernet-encrypted JSON file on disk. Derives
  the encryption key from a master password using PBKDF2-HMAC-SHA256.

All methods are async so that file and in-memory backends share one
interface with any future I/O-bound backend.
"""

from __future__ import annotations

import base64
import json
import logging
import pathlib
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

if TYPE_CHECKING:
    from keyring_bridge.config import BackendConfig

logger = logging.getLogger(__name__)

CredentialKey = tuple[str, str]


class CredentialStoreError(Exception):
    """The credential store could not complete an operation."""


class NoEntryError(CredentialStoreError):
    """No secret is stored for the requested credential."""

    def __init__(self) -> None:
        super().__init__("No matching entry found in secure storage")


class CredentialStore(ABC):
    """Abstract credential store addressed by ``(service, user)``."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description, reported by ``store_info``."""

    @abstractmethod
    async def get_secret(self, service: str, user: str) -> bytes:
        """Return the stored secret. Raises :class:`NoEntryError` if none."""

    @abstractmethod
    async def set_secret(self, service: str, user: str, secret: bytes) -> None:
        """Store or overwrite the secret."""

    @abstractmethod
    async def delete_secret(self, service: str, user: str) -> None:
        """Delete the secret, keeping attributes. Raises :class:`NoEntryError` if none."""

    @abstractmethod
    async def get_attributes(self, service: str, user: str) -> dict[str, str]:
        """Return the attribute map; empty if none were set."""

    @abstractmethod
    async def update_attributes(
        self, service: str, user: str, attributes: dict[str, str],
    ) -> None:
        """Merge ``attributes`` into the existing map."""

    @abstractmethod
    async def remove(self, service: str, user: str) -> None:
        """Forget the credential entirely. Does not raise if it is unknown."""

    @abstractmethod
    async def search(self) -> list[CredentialKey]:
        """Return every stored credential."""

    async def close(self) -> None:
        """Release any resources held by the store."""


class _RecordStore(CredentialStore):
    """Shared logic for stores that load and save the full record table."""

    @abstractmethod
    def _load(self) -> dict[CredentialKey, dict[str, Any]]:
        """Return all records keyed by (service, user)."""

    @abstractmethod
    def _save(self, records: dict[CredentialKey, dict[str, Any]]) -> None:
        """Persist all records."""

    async def get_secret(self, service: str, user: str) -> bytes:
        record = self._load().get((service, user))
        if record is None or record.get("secret") is None:
            raise NoEntryError()
        return bytes.fromhex(record["secret"])

    async def set_secret(self, service: str, user: str, secret: bytes) -> None:
        records = self._load()
        record = records.setdefault((service, user), {"secret": None, "attributes": {}})
        record["secret"] = secret.hex()
        self._save(records)

    async def delete_secret(self, service: str, user: str) -> None:
        records = self._load()
        record = records.get((service, user))
        if record is None or record.get("secret") is None:
            raise NoEntryError()
        record["secret"] = None
        if not record["attributes"]:
            del records[(service, user)]
        self._save(records)

    async def get_attributes(self, service: str, user: str) -> dict[str, str]:
        record = self._load().get((service, user))
        if record is None:
            return {}
        return dict(record["attributes"])

    async def update_attributes(
        self, service: str, user: str, attributes: dict[str, str],
    ) -> None:
        records = self._load()
        record = records.setdefault((service, user), {"secret": None, "attributes": {}})
        record["attributes"].update(attributes)
        self._save(records)

    async def remove(self, service: str, user: str) -> None:
        records = self._load()
        if records.pop((service, user), None) is not None:
            self._save(records)

    async def search(self) -> list[CredentialKey]:
        return list(self._load().keys())


class MemoryStore(_RecordStore):
    """Volatile store; contents vanish when the process exits."""

    def __init__(self) -> None:
        self._records: dict[CredentialKey, dict[str, Any]] = {}

    @property
    def description(self) -> str:
        return f"In-memory credential store ({len(self._records)} credentials)"

    def _load(self) -> dict[CredentialKey, dict[str, Any]]:
        return self._records

    def _save(self, records: dict[CredentialKey, dict[str, Any]]) -> None:
        self._records = records


# Changing the salt or iteration count makes existing store files unreadable.
_SALT = b"keyring-bridge-credentials-v1"
_ITERATIONS = 480_000


def _derive_key(master_password: str) -> bytes:
    """Derive a 32-byte Fernet key from the master password via PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SALT,
        iterations=_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(master_password.encode("utf-8")))


class EncryptedFileStore(_RecordStore):
    """Stores credentials as a Fernet-encrypted JSON file on disk.

    Parameters
    ----------
    file_path:
        Path to the encrypted file. Created on first write.
    master_password:
        Password used to derive the Fernet encryption key via PBKDF2.
    """

    def __init__(self, file_path: pathlib.Path, master_password: str) -> None:
        self._path = file_path
        self._fernet = Fernet(_derive_key(master_password))

    @property
    def description(self) -> str:
        return f"Encrypted file credential store at {self._path}"

    def _load(self) -> dict[CredentialKey, dict[str, Any]]:
        """Read and decrypt the file. Returns empty dict if missing."""
        if not self._path.exists():
            return {}
        try:
            plaintext = self._fernet.decrypt(self._path.read_bytes())
        except InvalidToken as exc:
            raise CredentialStoreError(
                f"Cannot decrypt {self._path}: wrong master password or corrupt file"
            ) from exc
        return {
            (row["service"], row["user"]): {
                "secret": row.get("secret"),
                "attributes": dict(row.get("attributes", {})),
            }
            for row in json.loads(plaintext)
        }

    def _save(self, records: dict[CredentialKey, dict[str, Any]]) -> None:
        """Encrypt and write the records to disk."""
        rows = [
            {"service": service, "user": user, **record}
            for (service, user), record in records.items()
        ]
        ciphertext = self._fernet.encrypt(json.dumps(rows, sort_keys=True).encode("utf-8"))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(ciphertext)


def open_named_store(name: str, config: BackendConfig) -> CredentialStore:
    """Create the credential store registered under ``name``.

    ``memory`` is volatile, ``sample`` is an encrypted file at
    ``config.sample_file``, and ``file`` is an encrypted file at
    ``<data_dir>/file.enc``.
    """
    if name == "memory":
        return MemoryStore()
    if name == "sample":
        path = pathlib.Path(config.sample_file)
    elif name == "file":
        path = pathlib.Path(config.data_dir) / f"{name}.enc"
    else:
        raise CredentialStoreError(f"Unknown credential store '{name}'")
    logger.debug("Opening encrypted store %s at %s", name, path)
    return EncryptedFileStore(file_path=path, master_password=config.master_password)
