"""Transports that carry bridge commands to the store service.

The store service runs as a separate process and listens on a Unix domain
socket. Requests use a small JSON-RPC 2.0 protocol, one newline-terminated
request and one newline-terminated response per connection.

:class:`LocalTransport` invokes a command handler in the same process and is
used when embedding the store service or in tests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from keyring_bridge.config import MAX_LINE_BYTES

if TYPE_CHECKING:
    from keyring_bridge.backend.history import CommandHandler

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """The store service rejected a command or could not be reached."""


class Transport(ABC):
    """Delivers one named command and returns its raw result.

    Implementations raise on any failure; normalizing failures into
    ``Err`` results is the bridge's job, not the transport's.
    """

    @abstractmethod
    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Send ``command`` with ``args`` and return the decoded result."""


class UnixSocketTransport(Transport):
    """JSON-RPC client for the store service's Unix domain socket.

    Parameters
    ----------
    socket_path:
        Path to the store service socket.
    rpc_timeout:
        Optional deadline in seconds for each call. ``None`` waits for the
        service to answer however long it takes.
    limit:
        Longest reply line accepted, in bytes.
    """

    def __init__(
        self,
        socket_path: str,
        rpc_timeout: float | None = None,
        limit: int = MAX_LINE_BYTES,
    ) -> None:
        self._socket_path = socket_path
        self._request_id = 0
        self._rpc_timeout = rpc_timeout
        self._limit = limit

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        if self._rpc_timeout is None:
            return await self._call(command, args)
        return await asyncio.wait_for(
            self._call(command, args),
            timeout=self._rpc_timeout,
        )

    async def _call(self, command: str, args: dict[str, Any] | None) -> Any:
        """Send a JSON-RPC request and return the "result" field.

        Raises
        ------
        ConnectionRefusedError, FileNotFoundError:
            If the service socket is not available.
        TransportError:
            If the service returns a JSON-RPC error or an empty reply.
        """
        self._request_id += 1
        request: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": command,
        }
        if args:
            request["params"] = args

        reader, writer = await asyncio.open_unix_connection(self._socket_path, limit=self._limit)
        try:
            writer.write(json.dumps(request).encode() + b"\n")
            await writer.drain()

            response_line = await reader.readline()
            if not response_line:
                raise TransportError(f"Store service closed the connection during '{command}'")
            response = json.loads(response_line.decode())

            if "error" in response:
                raise TransportError(response["error"].get("message", "unknown"))

            return response.get("result")
        finally:
            writer.close()
            await writer.wait_closed()


class LocalTransport(Transport):
    """Dispatches commands directly to an in-process command handler."""

    def __init__(self, handler: CommandHandler) -> None:
        self._handler = handler

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        return await self._handler.dispatch(command, args or {})
