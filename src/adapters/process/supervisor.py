"""
Local process supervisor — run ecosystem tooling as child processes.

Every child gets a fully explicit environment (a short allow-list of
host variables plus the caller's values), has its output routed into
logging, and is stopped through one idempotent teardown:

    1. cooperative stop  — a quit hook (e.g. an HTTP quit request) or SIGTERM
    2. bounded wait      — up to ``grace_period`` seconds for the exit
    3. forced stop       — SIGKILL, then wait for the exit

Teardown always settles: failures inside it are logged, never raised,
so they cannot mask an error the caller is already propagating.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
from collections import deque
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Mapping, Sequence

from src.core.config.settings import DEFAULT_GRACE_PERIOD
from src.core.errors import ProcessError
from src.core.models.source import EnvironmentVariables, RuntimeConfigValues

logger = logging.getLogger(__name__)

# Host variables a child may inherit.  Nothing else leaks through.
HOST_ENV_ALLOWLIST = ("HOME", "PATH", "NODE_ENV")

_STDERR_TAIL_LINES = 20
_DRAIN_TIMEOUT = 2.0
_READ_SIZE = 8192
# longer lines are logged truncated; the rest of the line is discarded
_MAX_LINE_BYTES = 64 * 1024

Teardown = Callable[[], Awaitable[None]]
QuitHook = Callable[[], Awaitable[None]]


async def noop_teardown() -> None:
    """Teardown for when nothing was started."""


# ── Environment ─────────────────────────────────────────────────────


def build_child_env(
    overrides: Mapping[str, str] | None = None,
    inherit: Sequence[str] = HOST_ENV_ALLOWLIST,
) -> dict[str, str]:
    """Allow-listed host variables with ``overrides`` applied on top."""
    env = {name: os.environ[name] for name in inherit if name in os.environ}
    for key, value in (overrides or {}).items():
        env[key] = str(value)
    return env


def runtime_env(
    port: int,
    config: RuntimeConfigValues | None,
    env: EnvironmentVariables | None,
) -> dict[str, str]:
    """Environment for a serve/discovery child listening on ``port``.

    CLOUD_RUNTIME_CONFIG is only set when there is config to pass.
    """
    values: dict[str, str] = dict(env or {})
    values["PORT"] = str(port)
    values["FUNCTIONS_CONTROL_API"] = "true"
    if config:
        values["CLOUD_RUNTIME_CONFIG"] = json.dumps(config)
    return build_child_env(values)


# ── Supervised process ──────────────────────────────────────────────


class SupervisedProcess:
    """A running child plus its shutdown protocol.

    Owned by the call that spawned it.  ``terminate()`` may be awaited
    any number of times; only the first call signals the process.
    """

    def __init__(
        self,
        label: str,
        process: asyncio.subprocess.Process,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        quit: QuitHook | None = None,
        stdout_level: int = logging.DEBUG,
        stderr_level: int = logging.DEBUG,
    ):
        self.label = label
        self.process = process
        self.grace_period = grace_period
        self._quit = quit
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._shutdown_task: asyncio.Task | None = None
        self._pumps: list[asyncio.Task] = []
        if process.stdout is not None:
            self._pumps.append(asyncio.create_task(self._pump(process.stdout, stdout_level, False)))
        if process.stderr is not None:
            self._pumps.append(asyncio.create_task(self._pump(process.stderr, stderr_level, True)))

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    @property
    def stderr_tail(self) -> list[str]:
        return list(self._stderr_tail)

    async def wait(self) -> int:
        """Wait for the process to exit on its own; returns the exit code."""
        code = await self.process.wait()
        await self._drain()
        return code

    async def terminate(self) -> None:
        """Stop the process (idempotent, never raises)."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await self._shutdown_task

    async def _shutdown(self) -> None:
        try:
            if self.process.returncode is None:
                await self._request_stop()
                try:
                    await asyncio.wait_for(self.process.wait(), timeout=self.grace_period)
                except asyncio.TimeoutError:
                    logger.warning(
                        "%s did not exit within %.0fs; killing it",
                        self.label, self.grace_period,
                    )
                    self._send(signal.SIGKILL)
                    await asyncio.wait_for(self.process.wait(), timeout=self.grace_period)
            await self._drain()
            logger.debug("%s stopped (exit code %s)", self.label, self.process.returncode)
        except Exception as e:
            logger.warning("Error while stopping %s (pid %s): %s", self.label, self.pid, e)

    async def _request_stop(self) -> None:
        if self._quit is not None:
            try:
                await self._quit()
                return
            except Exception as e:
                logger.debug("Quit request to %s failed (%s); sending SIGTERM", self.label, e)
        self._send(signal.SIGTERM)

    def _send(self, sig: int) -> None:
        # children run in their own session; signal the whole group
        try:
            os.killpg(self.process.pid, sig)
        except (ProcessLookupError, PermissionError):
            with suppress(ProcessLookupError):
                self.process.send_signal(sig)

    async def _pump(self, stream: asyncio.StreamReader, level: int, is_stderr: bool) -> None:
        # chunked reads: a line longer than the reader limit must not stop the pump
        buffer = b""
        skipping = False
        while True:
            chunk = await stream.read(_READ_SIZE)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                if skipping:
                    skipping = False
                    continue
                self._emit(line, level, is_stderr)
            if len(buffer) > _MAX_LINE_BYTES:
                if not skipping:
                    self._emit(buffer[:_MAX_LINE_BYTES] + b" [truncated]", level, is_stderr)
                skipping = True
                buffer = b""
        if buffer and not skipping:
            self._emit(buffer, level, is_stderr)

    def _emit(self, line: bytes, level: int, is_stderr: bool) -> None:
        text = line.decode("utf-8", errors="replace").rstrip()
        if not text:
            return
        if is_stderr:
            self._stderr_tail.append(text)
        logger.log(level, "[%s] %s", self.label, text)

    async def _drain(self) -> None:
        """Let the output pumps flush; abandon them if a grandchild holds the pipe."""
        if not self._pumps:
            return
        _, pending = await asyncio.wait(self._pumps, timeout=_DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()

    def __repr__(self) -> str:
        return f"<SupervisedProcess {self.label!r} pid={self.pid} rc={self.returncode}>"


async def spawn(
    label: str,
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    grace_period: float = DEFAULT_GRACE_PERIOD,
    quit: QuitHook | None = None,
    stdout_level: int = logging.DEBUG,
    stderr_level: int = logging.DEBUG,
) -> SupervisedProcess:
    """Start ``argv`` in ``cwd`` with exactly ``env``.

    Raises:
        ProcessError: if the executable cannot be started.
    """
    logger.debug("Starting %s: %s (cwd=%s)", label, " ".join(argv), cwd)
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=dict(env),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise ProcessError(
            f"Failed to start {label} ({argv[0]}): {e}",
            remediation=f"Make sure '{argv[0]}' is installed and on your PATH.",
        ) from e

    return SupervisedProcess(
        label,
        process,
        grace_period=grace_period,
        quit=quit,
        stdout_level=stdout_level,
        stderr_level=stderr_level,
    )


def make_teardown(*processes: SupervisedProcess) -> Teardown:
    """One teardown that stops and joins every process concurrently."""

    async def teardown() -> None:
        results = await asyncio.gather(
            *(p.terminate() for p in processes), return_exceptions=True,
        )
        for proc, result in zip(processes, results):
            if isinstance(result, Exception):
                logger.warning("Failed to stop %s: %s", proc.label, result)

    return teardown


@asynccontextmanager
async def supervised(
    label: str,
    argv: Sequence[str],
    **kwargs,
) -> AsyncIterator[SupervisedProcess]:
    """Scoped child process: terminated on exit from the block, whatever happens."""
    proc = await spawn(label, argv, **kwargs)
    try:
        yield proc
    finally:
        await proc.terminate()


async def run_to_completion(
    label: str,
    argv: Sequence[str],
    *,
    timeout: float | None = None,
    **kwargs,
) -> SupervisedProcess:
    """Run a finite command (e.g. a code generator) and wait for it to exit.

    The returned process has exited; inspect ``returncode`` and
    ``stderr_tail``.

    Raises:
        ProcessError: if it cannot start or runs longer than ``timeout``.
    """
    async with supervised(label, argv, **kwargs) as proc:
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProcessError(
                f"{label} did not finish within {timeout:.0f}s",
                stderr_tail=proc.stderr_tail,
            ) from e
    return proc
