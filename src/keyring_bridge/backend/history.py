"""Command handler for the store service.

Keeps the per-session entry history: every entry created or found by a
search gets an id (``#1``, ``#2``, ...) that stays valid until the store is
changed or released. Secret values are exchanged as tagged payloads
(``UTF8:`` / ``HEX:``) and stored as raw bytes.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from typing import TYPE_CHECKING, Any

from keyring_bridge.backend.stores import (
    CredentialStore,
    CredentialStoreError,
    NoEntryError,
    open_named_store,
)
from keyring_bridge.models import (
    Entry,
    SecretFormatError,
    decode_secret_payload,
    encode_secret,
    split_secret_payload,
)

if TYPE_CHECKING:
    from keyring_bridge.config import BackendConfig

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A command failed; the message is reported to the caller verbatim."""


class UnknownCommandError(CommandError):
    """No command with the requested name exists."""


class InvalidParamsError(CommandError):
    """The arguments do not match the command's parameters."""


@dataclasses.dataclass(frozen=True)
class HistoryEntry:
    """An entry handle plus the credential it addresses.

    Both stores address credentials by ``(service, user)``, so every
    history entry is a specifier entry.
    """

    id: str
    service: str
    user: str

    def to_entry(self) -> Entry:
        return Entry(id=self.id, is_specifier=True, service=self.service, user=self.user)


COMMANDS = frozenset({
    "use_named_store",
    "release_store",
    "store_info",
    "get_entry",
    "get_all_entries",
    "remove_entry",
    "entry_new",
    "entry_get_value",
    "entry_set_value",
    "entry_get_attributes",
    "entry_update_attributes",
    "entry_delete_value",
    "search_all",
})


class CommandHandler:
    """Executes store commands against the selected credential store.

    Commands run one at a time; the history and the selected store are
    shared by every client of the service.

    Parameters
    ----------
    config:
        Backend settings used to open named stores.
    """

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        self._lock = asyncio.Lock()
        self._store: CredentialStore | None = None
        self._store_name: str | None = None
        self._opened: dict[str, CredentialStore] = {}
        self._history: dict[str, HistoryEntry] = {}
        self._next_entry_id = 1

    async def dispatch(self, command: str, args: dict[str, Any]) -> Any:
        """Run ``command`` with keyword ``args`` and return a JSON-ready result.

        Raises
        ------
        UnknownCommandError:
            If ``command`` is not a store command.
        InvalidParamsError:
            If ``args`` do not match the command's parameters.
        CommandError:
            If the command itself fails.
        """
        if command not in COMMANDS:
            raise UnknownCommandError(f"Unknown command '{command}'")
        method = getattr(self, command)
        try:
            inspect.signature(method).bind(**args)
        except TypeError as exc:
            raise InvalidParamsError(f"Invalid params for '{command}': {exc}") from exc
        async with self._lock:
            try:
                return await method(**args)
            except CredentialStoreError as exc:
                raise CommandError(str(exc)) from exc

    # -- internal helpers -----------------------------------------------------

    def _reset(self) -> None:
        self._history = {}
        self._next_entry_id = 1

    def _require_store(self) -> CredentialStore:
        if self._store is None:
            raise CommandError("No default store has been set, so cannot search or create entries")
        return self._store

    def _lookup(self, id: str) -> HistoryEntry:
        entry = self._history.get(id)
        if entry is None:
            raise CommandError(f"No history entry with id '{id}'")
        return entry

    def _insert(self, service: str, user: str) -> HistoryEntry:
        entry = HistoryEntry(id=f"#{self._next_entry_id}", service=service, user=user)
        self._next_entry_id += 1
        self._history[entry.id] = entry
        return entry

    async def close(self) -> None:
        """Deselect the store and close every store opened so far."""
        async with self._lock:
            self._store, self._store_name = None, None
            self._reset()
            for store in self._opened.values():
                await store.close()
            self._opened.clear()

    # -- store selection ------------------------------------------------------

    async def use_named_store(self, name: str) -> None:
        # Opened stores are kept so a volatile store survives re-selection.
        store = self._opened.get(name)
        if store is None:
            store = open_named_store(name, self._config)
            self._opened[name] = store
        self._store, self._store_name = store, name
        self._reset()
        logger.info("Using credential store %s", name)

    async def release_store(self) -> None:
        if self._store_name is not None:
            logger.info("Releasing credential store %s", self._store_name)
        self._store, self._store_name = None, None
        self._reset()

    async def store_info(self) -> str:
        if self._store is None:
            return "No store selected"
        return f"{self._store_name}: {self._store.description}"

    # -- entry history --------------------------------------------------------

    async def get_entry(self, id: str) -> dict[str, Any]:
        return self._lookup(id).to_entry().to_wire()

    async def get_all_entries(self) -> list[dict[str, Any]]:
        return [entry.to_entry().to_wire() for entry in self._history.values()]

    async def remove_entry(self, id: str) -> None:
        entry = self._history.pop(id, None)
        if entry is None:
            return
        if self._store is not None:
            await self._store.remove(entry.service, entry.user)

    async def entry_new(self, service: str, user: str) -> dict[str, Any]:
        self._require_store()
        if not service or not user:
            raise CommandError("Both service and user must be non-empty")
        return self._insert(service, user).to_entry().to_wire()

    # -- secrets and attributes -----------------------------------------------

    async def entry_get_value(self, id: str) -> str:
        entry = self._lookup(id)
        secret = await self._require_store().get_secret(entry.service, entry.user)
        return encode_secret(secret)

    async def entry_set_value(self, id: str, value: str) -> None:
        entry = self._lookup(id)
        try:
            encoding, _ = split_secret_payload(value)
            secret = decode_secret_payload(value)
        except SecretFormatError as exc:
            raise CommandError(str(exc)) from exc
        logger.debug("Setting %s secret for %s", encoding.value, entry.id)
        await self._require_store().set_secret(entry.service, entry.user, secret)

    async def entry_delete_value(self, id: str) -> None:
        entry = self._lookup(id)
        try:
            await self._require_store().delete_secret(entry.service, entry.user)
        except NoEntryError:
            pass

    async def entry_get_attributes(self, id: str) -> dict[str, str]:
        entry = self._lookup(id)
        return await self._require_store().get_attributes(entry.service, entry.user)

    async def entry_update_attributes(self, id: str, attributes: dict[str, str]) -> None:
        entry = self._lookup(id)
        if not isinstance(attributes, dict):
            raise CommandError("Attributes must be a map of strings to strings")
        await self._require_store().update_attributes(
            entry.service, entry.user, {str(k): str(v) for k, v in attributes.items()},
        )

    async def search_all(self) -> int:
        found = await self._require_store().search()
        for service, user in found:
            self._insert(service, user)
        return len(found)
