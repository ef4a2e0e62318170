"""Launch external tools as asyncio subprocesses.

Processes are always spawned from an argument vector
(``asyncio.create_subprocess_exec``), never through a shell, so page URLs,
passwords and format selectors are passed verbatim.
"""

from __future__ import annotations

import asyncio
import os
from collections import deque
from collections.abc import AsyncIterator, Mapping, Sequence

import structlog

from vidpipe.domain.entities.errors import TranscoderFailed
from vidpipe.domain.ports.process_runner import ProcessResult

log = structlog.get_logger(__name__)

_DEFAULT_CHUNK_SIZE = 65536
_STDERR_TAIL_LINES = 50
_KILL_TIMEOUT = 5.0


def merged_env(overrides: Mapping[str, str] | None = None) -> dict[str, str]:
    """Inherited environment updated with *overrides*."""
    env = dict(os.environ)
    if overrides:
        env.update(overrides)
    return env


class ProcessStream:
    """Stdout of a child process, consumed chunk by chunk.

    The child is spawned on ``start()`` (or on first iteration).  Stderr is
    drained in the background into a bounded tail so a chatty child never
    blocks on a full pipe.  Reaching EOF waits for the exit status and raises
    ``TranscoderFailed`` on a non-zero code; ``aclose()`` kills a child that
    is still running.
    """

    def __init__(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._args = list(args)
        self._env = env
        self._chunk_size = chunk_size
        self._proc: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._closed = False

    @property
    def args(self) -> list[str]:
        return self._args

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else None

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    async def start(self) -> None:
        if self._proc is not None:
            return
        if self._closed:
            raise RuntimeError("process stream already closed")

        self._proc = await asyncio.create_subprocess_exec(
            *self._args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(self._env) if self._env is not None else None,
        )
        self._stderr_task = asyncio.create_task(self._pump_stderr())
        log.debug("process_spawned", pid=self._proc.pid, program=self._args[0])

    async def _pump_stderr(self) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        while True:
            line = await self._proc.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", "replace").rstrip()
            if text:
                self._stderr_tail.append(text)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_stdout()

    async def _iter_stdout(self) -> AsyncIterator[bytes]:
        await self.start()
        assert self._proc is not None and self._proc.stdout is not None
        try:
            while True:
                chunk = await self._proc.stdout.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk

            returncode = await self._proc.wait()
            if self._stderr_task is not None:
                await self._stderr_task
            if returncode != 0:
                log.error(
                    "process_failed",
                    pid=self._proc.pid,
                    program=self._args[0],
                    returncode=returncode,
                    stderr=self.stderr_tail,
                )
                raise TranscoderFailed(returncode, self.stderr_tail)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        proc = self._proc
        if proc is not None and proc.returncode is None:
            log.info("process_killed", pid=proc.pid, program=self._args[0])
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=_KILL_TIMEOUT)
            except asyncio.TimeoutError:
                log.warning("process_reap_timeout", pid=proc.pid)

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass


class ProcessRunner:
    """Spawns short-lived tool invocations and streaming pipes."""

    def __init__(self, *, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> None:
        self._chunk_size = chunk_size

    async def run(
        self, args: Sequence[str], *, env: Mapping[str, str] | None = None
    ) -> ProcessResult:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        returncode = proc.returncode if proc.returncode is not None else -1
        return ProcessResult(
            returncode=returncode,
            stdout=stdout.decode("utf-8", "replace"),
            stderr=stderr.decode("utf-8", "replace"),
        )

    async def probe(self, args: Sequence[str]) -> bool:
        try:
            result = await self.run(args)
        except OSError:
            log.warning("process_probe_failed", program=args[0] if args else None)
            return False
        return result.ok

    def open(
        self, args: Sequence[str], *, env: Mapping[str, str] | None = None
    ) -> ProcessStream:
        return ProcessStream(args, env=env, chunk_size=self._chunk_size)
