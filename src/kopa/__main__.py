import argparse
import logging
import shutil
import subprocess
import sys
from pathlib import Path

from kopa import client
from kopa.config import LOG_PATH, PREVIEW_LENGTH, load_settings
from kopa.errors import DaemonConnectionError, KopaError, WatcherExitError
from kopa.utils import ensure_dirs, truncate_text

logger = logging.getLogger("kopa")

SYSTEMD_USER_DIR = Path.home() / ".config" / "systemd" / "user"
# unit file name -> kopa subcommand it runs
UNITS = {
    "kopa.service": "daemon",
    "kopa-server.service": "serve",
}


def get_kopa_path() -> str:
    """Get the command line that runs kopa."""
    kopa_path = shutil.which("kopa")
    if kopa_path:
        return kopa_path
    return f"{sys.executable} -m kopa"


def create_unit(kopa_path: str, command: str) -> str:
    """Generate a systemd user unit running ``kopa <command>``."""
    return f"""[Unit]
Description=kopa clipboard history ({command})
PartOf=graphical-session.target
After=graphical-session.target

[Service]
ExecStart={kopa_path} {command}
Restart=on-failure
RestartSec=2

[Install]
WantedBy=graphical-session.target
"""


def _systemctl(*args: str) -> subprocess.CompletedProcess:
    return subprocess.run(["systemctl", "--user", *args], capture_output=True, text=True)


def install_service() -> int:
    """Install and start the systemd user units."""
    ensure_dirs()

    kopa_path = get_kopa_path()
    print(f"Installing systemd user units for: {kopa_path}")
    SYSTEMD_USER_DIR.mkdir(parents=True, exist_ok=True)

    for unit, command in UNITS.items():
        unit_path = SYSTEMD_USER_DIR / unit
        unit_path.write_text(create_unit(kopa_path, command))
        print(f"Created: {unit_path}")

    _systemctl("daemon-reload")
    for unit in UNITS:
        result = _systemctl("enable", "--now", unit)
        if result.returncode != 0:
            print(f"Failed to start {unit}: {result.stderr.strip()}")
            return 1

    print("kopa is now running in the background.")
    print("It will start automatically with your graphical session.")
    return 0


def uninstall_service() -> int:
    """Stop and remove the systemd user units."""
    installed = [unit for unit in UNITS if (SYSTEMD_USER_DIR / unit).exists()]
    if not installed:
        print("Service not installed.")
        return 0

    for unit in installed:
        _systemctl("disable", "--now", unit)
        (SYSTEMD_USER_DIR / unit).unlink()
    _systemctl("daemon-reload")
    print("Service uninstalled.")
    print("kopa will no longer start with your session.")
    return 0


def check_status() -> int:
    """Check if the kopa units are running."""
    all_active = True
    for unit in UNITS:
        unit_path = SYSTEMD_USER_DIR / unit
        result = _systemctl("is-active", unit)
        if result.returncode == 0:
            print(f"{unit} is running.")
        elif unit_path.exists():
            all_active = False
            print(f"{unit} installed but not running: {unit_path}")
        else:
            all_active = False
            print(f"{unit} not installed. Run: kopa install")
    return 0 if all_active else 1


def setup_logging(to_stderr: bool = True) -> None:
    ensure_dirs()
    handlers: list[logging.Handler] = [logging.FileHandler(LOG_PATH)]
    if to_stderr:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _make_store():
    from kopa.storage import HistoryStore

    settings = load_settings()
    return HistoryStore(history_limit=settings.history_limit), settings


def run_daemon() -> int:
    setup_logging()
    from kopa.monitor import run_daemon as supervise

    try:
        supervise()
    except WatcherExitError:
        return 1
    return 0


def run_serve() -> int:
    setup_logging()
    from kopa.server import run_server

    store, _ = _make_store()
    run_server(store)
    return 0


def run_store() -> int:
    """Ingest one clipboard payload from stdin."""
    setup_logging(to_stderr=False)
    from kopa.ingest import run_store as ingest

    try:
        store, settings = _make_store()
        ingest(sys.stdin.buffer, store, settings.max_file_size_bytes)
    except KopaError:
        logger.exception("Failed to store clipboard content")
        return 1
    return 0


def run_seed(count: int) -> int:
    setup_logging()
    from kopa.seed import seed_history

    store, _ = _make_store()
    try:
        seed_history(store, count)
    except KopaError:
        logger.exception("Failed to seed history")
        return 1
    return 0


def print_page(response: dict) -> int:
    if response.get("type") == "error":
        print(f"Error: {response.get('data', {}).get('message')}", file=sys.stderr)
        return 1
    data = response.get("data", {})
    for entry in data.get("entries", []):
        print(f"{entry['id']}  {truncate_text(entry['value'], PREVIEW_LENGTH)}")
    if data.get("next_cursor") is not None:
        print(f"next cursor: {data['next_cursor']}")
    return 0


def run_client(args: argparse.Namespace) -> int:
    try:
        if args.command == "list":
            return print_page(client.list_entries(args.cursor, args.limit))
        if args.command == "search":
            return print_page(client.search_entries(args.query, args.cursor, args.limit))
        if args.command == "delete":
            response, done = client.delete_entry(args.entry_id), "Deleted entry."
        elif args.command == "clear":
            response, done = client.clear_history(), "History cleared."
        else:
            response, done = client.copy_entry(args.entry_id), "Copied to clipboard."
    except DaemonConnectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if response.get("type") == "error":
        print(f"Error: {response.get('data', {}).get('message')}", file=sys.stderr)
        return 1
    print(done)
    return 0


def _positive(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return number


def _non_negative(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kopa",
        description="kopa - Clipboard history manager for Wayland",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kopa install        # Install and start as systemd user services
  kopa list           # Show the most recent entries
  kopa search foo     # Fuzzy search the history
  kopa copy <id>      # Put an entry back on the clipboard
""",
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="command")

    commands.add_parser("daemon", help="Run the clipboard watcher supervisor")
    commands.add_parser("serve", help="Run the history query server")
    commands.add_parser("store", help="Store clipboard content read from stdin")

    list_parser = commands.add_parser("list", help="List history entries")
    search_parser = commands.add_parser("search", help="Search history entries")
    search_parser.add_argument("query")
    for sub in (list_parser, search_parser):
        sub.add_argument("--cursor", type=_non_negative, default=None)
        sub.add_argument("--limit", type=_positive, default=None)

    copy_parser = commands.add_parser("copy", help="Copy an entry back to the clipboard")
    copy_parser.add_argument("entry_id")

    delete_parser = commands.add_parser("delete", help="Delete an entry from the history")
    delete_parser.add_argument("entry_id")
    commands.add_parser("clear", help="Delete every history entry")

    seed_parser = commands.add_parser("seed", help="Replace the history with synthetic entries")
    seed_parser.add_argument("count", nargs="?", type=_positive, default=100_000)

    commands.add_parser("install", help="Install as systemd user services")
    commands.add_parser("uninstall", help="Remove the systemd user services")
    commands.add_parser("status", help="Check if kopa is running")
    return parser


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)

    if args.command == "install":
        sys.exit(install_service())
    elif args.command == "uninstall":
        sys.exit(uninstall_service())
    elif args.command == "status":
        sys.exit(check_status())
    elif args.command == "daemon":
        sys.exit(run_daemon())
    elif args.command == "serve":
        sys.exit(run_serve())
    elif args.command == "store":
        sys.exit(run_store())
    elif args.command == "seed":
        sys.exit(run_seed(args.count))
    else:
        sys.exit(run_client(args))


if __name__ == "__main__":
    main()
