"""Unix domain socket JSON-RPC server for the store service.

Each line received on a connection is one JSON-RPC 2.0 request; each reply
is one line. Failures are answered with a JSON-RPC error object and never
close the server.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import pathlib
from typing import Any

from keyring_bridge.backend.history import (
    CommandError,
    CommandHandler,
    InvalidParamsError,
    UnknownCommandError,
)
from keyring_bridge.config import MAX_LINE_BYTES

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
COMMAND_FAILED = -32000


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class StoreServer:
    """Serves a :class:`CommandHandler` on a Unix domain socket.

    Parameters
    ----------
    handler:
        Executes the decoded commands.
    socket_path:
        Filesystem path of the listening socket. A stale socket file left by
        a previous run is replaced.
    limit:
        Longest request line accepted, in bytes. A longer request is
        answered with an invalid-request error and the connection is closed.
    """

    def __init__(
        self,
        handler: CommandHandler,
        socket_path: str,
        limit: int = MAX_LINE_BYTES,
    ) -> None:
        self._handler = handler
        self._socket_path = socket_path
        self._limit = limit
        self._server: asyncio.AbstractServer | None = None

    @property
    def socket_path(self) -> str:
        return self._socket_path

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self) -> None:
        path = pathlib.Path(self._socket_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            path.unlink()
        self._server = await asyncio.start_unix_server(
            self._handle_connection, path=str(path), limit=self._limit,
        )
        os.chmod(path, 0o600)
        logger.info("Store service listening on %s", path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        await self._handler.close()
        pathlib.Path(self._socket_path).unlink(missing_ok=True)
        logger.info("Store service stopped")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        server = self._server
        if server is None:
            raise RuntimeError("Store service failed to start")
        await server.serve_forever()

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
    ) -> None:
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    # The oversized line cannot be re-framed; answer and hang up.
                    logger.warning("Rejected request longer than %d bytes", self._limit)
                    response = _error(
                        None, INVALID_REQUEST, f"Request exceeds {self._limit} bytes",
                    )
                    writer.write(json.dumps(response).encode() + b"\n")
                    await writer.drain()
                    break
                if not line:
                    break
                response = await self.handle_request(line)
                writer.write(json.dumps(response).encode() + b"\n")
                await writer.drain()
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Client disconnected mid-request")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass

    async def handle_request(self, line: bytes) -> dict[str, Any]:
        """Decode one request line, run the command, and build the reply."""
        try:
            request = json.loads(line.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            return _error(None, PARSE_ERROR, "Parse error")

        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return _error(None, INVALID_REQUEST, "Invalid request")

        request_id = request.get("id")
        method = request["method"]
        params = request.get("params") or {}
        if not isinstance(params, dict):
            return _error(request_id, INVALID_PARAMS, "Params must be an object")

        try:
            result = await self._handler.dispatch(method, params)
        except UnknownCommandError as exc:
            return _error(request_id, METHOD_NOT_FOUND, str(exc))
        except InvalidParamsError as exc:
            return _error(request_id, INVALID_PARAMS, str(exc))
        except CommandError as exc:
            logger.debug("Command %s failed: %s", method, exc)
            return _error(request_id, COMMAND_FAILED, str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure running %s", method)
            return _error(request_id, COMMAND_FAILED, str(exc) or type(exc).__name__)

        return {"jsonrpc": "2.0", "id": request_id, "result": result}
