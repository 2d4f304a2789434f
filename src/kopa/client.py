import json
import socket
from pathlib import Path

from kopa.config import SOCKET_PATH
from kopa.errors import DaemonConnectionError

CLIENT_TIMEOUT = 30.0


def send_request(request: dict, socket_path: str | Path | None = None, timeout: float = CLIENT_TIMEOUT) -> dict:
    """Send one request to the server and return its decoded response.

    Error responses are returned as-is; only transport failures raise.
    """
    path = str(socket_path or SOCKET_PATH)
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            sock.connect(path)
            sock.sendall(json.dumps(request).encode("utf-8") + b"\n")
            with sock.makefile("rb") as stream:
                line = stream.readline()
    except OSError as e:
        raise DaemonConnectionError(f"Cannot reach kopa server at {path}: {e}") from e

    if not line:
        raise DaemonConnectionError("Server closed the connection without a response")
    try:
        response = json.loads(line)
    except ValueError as e:
        raise DaemonConnectionError(f"Invalid response from server: {e}") from e
    if not isinstance(response, dict):
        raise DaemonConnectionError("Invalid response from server: not an object")
    return response


def list_entries(cursor: int | None = None, limit: int | None = None, socket_path=None) -> dict:
    return send_request({"type": "list_entries", "data": {"cursor": cursor, "limit": limit}}, socket_path)


def search_entries(query: str, cursor: int | None = None, limit: int | None = None, socket_path=None) -> dict:
    return send_request(
        {"type": "search_entries", "data": {"query": query, "cursor": cursor, "limit": limit}},
        socket_path,
    )


def copy_entry(entry_id: str, socket_path=None) -> dict:
    return send_request({"type": "copy_to_clipboard", "data": {"entry_id": entry_id}}, socket_path)


def delete_entry(entry_id: str, socket_path=None) -> dict:
    return send_request({"type": "delete_entry", "data": {"entry_id": entry_id}}, socket_path)


def clear_history(socket_path=None) -> dict:
    return send_request({"type": "clear_history"}, socket_path)
