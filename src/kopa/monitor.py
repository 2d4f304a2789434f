import asyncio
import logging
import os
import shutil
import signal
import sys
from dataclasses import dataclass, field

from kopa.config import HEARTBEAT_INTERVAL, SHUTDOWN_TIMEOUT, WL_PASTE_PATH
from kopa.errors import WatcherExitError

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def store_command() -> list[str]:
    """The argv that re-invokes this program in store mode."""
    binary_path = os.environ.get("KOPA_BINARY_PATH")
    if binary_path:
        return [binary_path, "store"]
    kopa_path = shutil.which("kopa")
    if kopa_path:
        return [kopa_path, "store"]
    return [sys.executable, "-m", "kopa", "store"]


def watcher_commands(wl_paste_path: str = WL_PASTE_PATH, store_cmd: list[str] | None = None) -> list[tuple[str, list[str]]]:
    store_cmd = store_cmd or store_command()
    return [
        ("text", [wl_paste_path, "--type", "text", "--watch", *store_cmd]),
        ("image", [wl_paste_path, "--type", "image/png", "--watch", *store_cmd]),
    ]


@dataclass
class Watcher:
    label: str
    process: asyncio.subprocess.Process


@dataclass
class DaemonContext:
    """Everything the running daemon owns; torn down once by ``Supervisor``."""

    watchers: list[Watcher] = field(default_factory=list)
    tasks: list[asyncio.Task] = field(default_factory=list)
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    cleaned_up: bool = False


class Supervisor:
    """Runs the clipboard watchers until one exits or a shutdown signal arrives."""

    def __init__(
        self,
        commands: list[tuple[str, list[str]]],
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        handle_signals: bool = True,
    ):
        self._commands = commands
        self._heartbeat_interval = heartbeat_interval
        self._shutdown_timeout = shutdown_timeout
        self._handle_signals = handle_signals

    async def run(self, context: DaemonContext | None = None) -> None:
        """Supervise until shutdown.

        Returns normally on a signal (or ``context.stop``); raises
        ``WatcherExitError`` when a watcher exits on its own.
        """
        context = context or DaemonContext()
        logger.info("Starting clipboard monitor...")
        try:
            await self._spawn(context)
            await self._supervise(context)
        finally:
            await self._cleanup(context)

    async def _spawn(self, context: DaemonContext) -> None:
        for label, args in self._commands:
            logger.info("Spawning %s watcher...", label)
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            context.watchers.append(Watcher(label, process))

    async def _supervise(self, context: DaemonContext) -> None:
        if self._handle_signals:
            loop = asyncio.get_running_loop()
            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, context.stop.set)

        exits = {asyncio.create_task(w.process.wait()): w for w in context.watchers}
        stop_task = asyncio.create_task(context.stop.wait())
        heartbeat = asyncio.create_task(self._heartbeat())
        drains = [asyncio.create_task(self._drain_stderr(w)) for w in context.watchers]
        context.tasks.extend([*exits, stop_task, heartbeat, *drains])

        done, _ = await asyncio.wait([*exits, stop_task, heartbeat], return_when=asyncio.FIRST_COMPLETED)

        if stop_task in done:
            logger.info("Received shutdown signal")
            return
        for task in done:
            if task in exits:
                watcher = exits[task]
                error = WatcherExitError(watcher.label, task.result())
                logger.error("%s", error)
                raise error
        # Only the heartbeat is left; it ends only by raising.
        heartbeat.result()

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            logger.info("Clipboard monitor running...")

    async def _drain_stderr(self, watcher: Watcher) -> None:
        stream = watcher.process.stderr
        if stream is None:
            return
        try:
            async for raw in stream:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    logger.error("%s watcher stderr: %s", watcher.label, line)
        except (OSError, ValueError) as e:
            logger.warning("Error reading %s watcher stderr: %s", watcher.label, e)

    async def _cleanup(self, context: DaemonContext) -> None:
        if context.cleaned_up:
            return
        context.cleaned_up = True
        logger.info("Shutting down clipboard monitor...")

        if self._handle_signals:
            loop = asyncio.get_running_loop()
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)

        for watcher in context.watchers:
            if watcher.process.returncode is None:
                try:
                    watcher.process.terminate()
                except ProcessLookupError:
                    pass
        await asyncio.gather(*(self._wait_for_exit(w) for w in context.watchers))

        for task in context.tasks:
            task.cancel()
        await asyncio.gather(*context.tasks, return_exceptions=True)

    async def _wait_for_exit(self, watcher: Watcher) -> None:
        try:
            await asyncio.wait_for(watcher.process.wait(), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s watcher did not exit, killing it", watcher.label)
            try:
                watcher.process.kill()
            except ProcessLookupError:
                pass
            await watcher.process.wait()


def run_daemon(commands: list[tuple[str, list[str]]] | None = None) -> None:
    supervisor = Supervisor(commands if commands is not None else watcher_commands())
    asyncio.run(supervisor.run())
