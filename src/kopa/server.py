"""Local query server: one line-delimited JSON request per Unix socket connection.

Requests and responses are tagged objects::

    {"type": "list_entries", "data": {"cursor": 0, "limit": 50}}
    {"type": "entries", "data": {"entries": [...], "next_cursor": 50}}
"""

import asyncio
import json
import logging
import os
import signal
from pathlib import Path

from kopa import __version__
from kopa.clipboard import ClipboardWriter
from kopa.config import DEFAULT_PAGE_SIZE, SOCKET_PATH
from kopa.errors import EntryNotFoundError, KopaError, ProtocolError
from kopa.models import entry_to_dict
from kopa.search import FuzzyFilter, Page, paginate
from kopa.storage import HistoryStore

logger = logging.getLogger(__name__)

READ_TIMEOUT = 30.0
MAX_REQUEST_BYTES = 16 * 1024 * 1024


def error_response(message: str) -> dict:
    return {"type": "error", "data": {"message": message}}


def success_response() -> dict:
    return {"type": "success"}


def entries_response(page: Page) -> dict:
    return {
        "type": "entries",
        "data": {
            "entries": [entry_to_dict(e) for e in page.entries],
            "next_cursor": page.next_cursor,
        },
    }


def parse_request(line: bytes) -> tuple[str, dict]:
    """Decode one request line into ``(type, data)``."""
    text = line.decode("utf-8", errors="replace").strip()
    if not text:
        raise ProtocolError("Empty request")
    try:
        request = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"Invalid request payload: {e}") from e

    if not isinstance(request, dict):
        raise ProtocolError("Request must be a JSON object")
    kind = request.get("type")
    if not isinstance(kind, str):
        raise ProtocolError("Request is missing a 'type'")
    data = request.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProtocolError("Request 'data' must be an object")
    return kind, data


def _optional_int(data: dict, field: str, default: int, minimum: int) -> int:
    value = data.get(field)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ProtocolError(f"'{field}' must be an integer >= {minimum}")
    return value


def _required_str(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise ProtocolError(f"'{field}' must be a string")
    return value


class RequestHandler:
    """Executes decoded requests against the history store. Blocking."""

    def __init__(
        self,
        store: HistoryStore,
        fuzzy: FuzzyFilter | None = None,
        clipboard: ClipboardWriter | None = None,
    ):
        self._store = store
        self._fuzzy = fuzzy if fuzzy is not None else FuzzyFilter()
        self._clipboard = clipboard if clipboard is not None else ClipboardWriter(store.blobs)
        self._handlers = {
            "list_entries": self._list_entries,
            "search_entries": self._search_entries,
            "copy_to_clipboard": self._copy_to_clipboard,
            "copy_text_to_clipboard": self._copy_text_to_clipboard,
            "delete_entry": self._delete_entry,
            "clear_history": self._clear_history,
            "ping": self._ping,
        }

    def handle_line(self, line: bytes) -> dict:
        """Answer one raw request line; never raises."""
        try:
            kind, data = parse_request(line)
            return self.handle(kind, data)
        except ProtocolError as e:
            logger.warning("Rejected request: %s", e)
            return error_response(str(e))
        except KopaError as e:
            logger.error("Request failed: %s", e)
            return error_response(str(e))
        except Exception as e:
            logger.exception("Unexpected error handling request")
            return error_response(f"Internal error: {e}")

    def handle(self, kind: str, data: dict) -> dict:
        handler = self._handlers.get(kind)
        if handler is None:
            raise ProtocolError(f"Unknown request type: {kind}")
        return handler(data)

    def _list_entries(self, data: dict) -> dict:
        cursor = _optional_int(data, "cursor", 0, 0)
        limit = _optional_int(data, "limit", DEFAULT_PAGE_SIZE, 1)
        return entries_response(paginate(self._store.read(), cursor, limit))

    def _search_entries(self, data: dict) -> dict:
        query = _required_str(data, "query")
        cursor = _optional_int(data, "cursor", 0, 0)
        limit = _optional_int(data, "limit", DEFAULT_PAGE_SIZE, 1)
        matches = self._fuzzy.filter(query, self._store.read())
        return entries_response(paginate(matches, cursor, limit))

    def _copy_to_clipboard(self, data: dict) -> dict:
        entry_id = _required_str(data, "entry_id")
        entry = self._store.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(f"Entry not found: {entry_id}")
        self._clipboard.copy_entry(entry)
        return success_response()

    def _copy_text_to_clipboard(self, data: dict) -> dict:
        self._clipboard.copy_text(_required_str(data, "content"))
        return success_response()

    def _delete_entry(self, data: dict) -> dict:
        entry_id = _required_str(data, "entry_id")
        if not self._store.delete_entry(entry_id):
            raise EntryNotFoundError(f"Entry not found: {entry_id}")
        return success_response()

    def _clear_history(self, _data: dict) -> dict:
        self._store.clear()
        return success_response()

    def _ping(self, _data: dict) -> dict:
        return {"type": "pong", "data": {"version": __version__}}


class ProtocolServer:
    def __init__(self, handler: RequestHandler, socket_path: str | Path | None = None):
        self._handler = handler
        self.socket_path = Path(socket_path) if socket_path else SOCKET_PATH
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> None:
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self.socket_path.exists() or self.socket_path.is_symlink():
            self.socket_path.unlink()
        self._server = await asyncio.start_unix_server(
            self.handle_client,
            path=str(self.socket_path),
            limit=MAX_REQUEST_BYTES,
        )
        os.chmod(self.socket_path, 0o600)
        logger.info("Listening on %s", self.socket_path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self.socket_path.unlink(missing_ok=True)
        logger.info("Server stopped")

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            try:
                line = await asyncio.wait_for(reader.readline(), timeout=READ_TIMEOUT)
            except asyncio.TimeoutError:
                response = error_response("Timed out waiting for request")
            except ValueError:
                response = error_response(f"Request exceeds {MAX_REQUEST_BYTES} bytes")
            else:
                response = await asyncio.to_thread(self._handler.handle_line, line)

            writer.write(json.dumps(response, ensure_ascii=False).encode("utf-8") + b"\n")
            await writer.drain()
        except ConnectionError as e:
            logger.warning("Client connection error: %s", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def serve_until(self, stop: asyncio.Event) -> None:
        await self.start()
        try:
            await stop.wait()
        finally:
            await self.stop()


def run_server(store: HistoryStore, socket_path: str | Path | None = None) -> None:
    """Serve until SIGINT or SIGTERM."""

    async def _main() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        server = ProtocolServer(RequestHandler(store), socket_path)
        await server.serve_until(stop)

    asyncio.run(_main())
