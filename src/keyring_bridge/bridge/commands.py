"""Command bridge: every store command as one coroutine returning a Result.

The bridge owns no state beyond its transport. It never retries and never
lets a transport failure escape: whatever the transport raises, or whatever
goes wrong decoding its reply, comes back as ``Err(message)``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from keyring_bridge.bridge.transport import Transport
from keyring_bridge.models import AttributeMap, Entry
from keyring_bridge.result import Err, Ok, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _void(_raw: Any) -> None:
    return None


def _entry(raw: Any) -> Entry:
    return Entry.model_validate(raw)


def _entries(raw: Any) -> list[Entry]:
    return [Entry.model_validate(item) for item in raw]


def _string(raw: Any) -> str:
    if not isinstance(raw, str):
        raise TypeError(f"expected a string, got {type(raw).__name__}")
    return raw


def _attributes(raw: Any) -> AttributeMap:
    if raw is None:
        return {}
    return {str(k): str(v) for k, v in dict(raw).items()}


def _count(raw: Any) -> int:
    return int(raw)


class StoreSelectionError(RuntimeError):
    """A named store could not be selected for a session."""


class CommandBridge:
    """Normalizes store commands into ``Ok`` / ``Err`` results.

    Parameters
    ----------
    transport:
        Carries commands to the store service.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def _invoke(
        self,
        command: str,
        decode: Callable[[Any], T],
        **args: Any,
    ) -> Result[T]:
        try:
            raw = await self._transport.invoke(command, args)
            return Ok(decode(raw))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Command %s failed: %s", command, exc)
            return Err(str(exc) or type(exc).__name__)

    # -- store selection ---------------------------------------------------

    async def use_named_store(self, name: str) -> Result[None]:
        return await self._invoke("use_named_store", _void, name=name)

    async def release_store(self) -> Result[None]:
        return await self._invoke("release_store", _void)

    async def store_info(self) -> Result[str]:
        return await self._invoke("store_info", _string)

    @asynccontextmanager
    async def open_store(self, name: str) -> AsyncIterator[StoreSession]:
        """Select ``name`` for the duration of the block, then release it.

        Raises
        ------
        StoreSelectionError:
            If the store service refuses to select the store.
        """
        result = await self.use_named_store(name)
        if isinstance(result, Err):
            raise StoreSelectionError(f"Cannot use store '{name}': {result.error}")
        logger.debug("Selected store %s", name)
        try:
            yield StoreSession(self, name)
        finally:
            released = await self.release_store()
            if isinstance(released, Err):
                logger.warning("Failed to release store %s: %s", name, released.error)

    # -- entry history -----------------------------------------------------

    async def get_entry(self, id: str) -> Result[Entry]:
        return await self._invoke("get_entry", _entry, id=id)

    async def get_all_entries(self) -> Result[list[Entry]]:
        return await self._invoke("get_all_entries", _entries)

    async def remove_entry(self, id: str) -> Result[None]:
        return await self._invoke("remove_entry", _void, id=id)

    async def entry_new(self, service: str, user: str) -> Result[Entry]:
        return await self._invoke("entry_new", _entry, service=service, user=user)

    # -- secrets and attributes ----------------------------------------------

    async def entry_get_value(self, id: str) -> Result[str]:
        return await self._invoke("entry_get_value", _string, id=id)

    async def entry_set_value(self, id: str, value: str) -> Result[None]:
        return await self._invoke("entry_set_value", _void, id=id, value=value)

    async def entry_delete_value(self, id: str) -> Result[None]:
        return await self._invoke("entry_delete_value", _void, id=id)

    async def entry_get_attributes(self, id: str) -> Result[AttributeMap]:
        return await self._invoke("entry_get_attributes", _attributes, id=id)

    async def entry_update_attributes(
        self, id: str, attributes: AttributeMap,
    ) -> Result[None]:
        """Merge ``attributes`` into the entry's map; other keys are kept."""
        return await self._invoke(
            "entry_update_attributes", _void, id=id, attributes=dict(attributes),
        )

    async def search_all(self) -> Result[int]:
        return await self._invoke("search_all", _count)


class StoreSession:
    """Handle for a selected store, obtained from :meth:`CommandBridge.open_store`.

    Exposes the store-scoped commands; store selection and release belong
    to the context manager that created the session.
    """

    def __init__(self, bridge: CommandBridge, name: str) -> None:
        self._bridge = bridge
        self.name = name

    async def store_info(self) -> Result[str]:
        return await self._bridge.store_info()

    async def get_entry(self, id: str) -> Result[Entry]:
        return await self._bridge.get_entry(id)

    async def get_all_entries(self) -> Result[list[Entry]]:
        return await self._bridge.get_all_entries()

    async def remove_entry(self, id: str) -> Result[None]:
        return await self._bridge.remove_entry(id)

    async def entry_new(self, service: str, user: str) -> Result[Entry]:
        return await self._bridge.entry_new(service, user)

    async def entry_get_value(self, id: str) -> Result[str]:
        return await self._bridge.entry_get_value(id)

    async def entry_set_value(self, id: str, value: str) -> Result[None]:
        return await self._bridge.entry_set_value(id, value)

    async def entry_delete_value(self, id: str) -> Result[None]:
        return await self._bridge.entry_delete_value(id)

    async def entry_get_attributes(self, id: str) -> Result[AttributeMap]:
        return await self._bridge.entry_get_attributes(id)

    async def entry_update_attributes(
        self, id: str, attributes: AttributeMap,
    ) -> Result[None]:
        return await self._bridge.entry_update_attributes(id, attributes)

    async def search_all(self) -> Result[int]:
        return await self._bridge.search_all()
