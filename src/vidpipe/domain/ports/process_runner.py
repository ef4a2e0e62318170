"""Port for launching external tools (extractor, transcoder)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished process."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@runtime_checkable
class ProcessStreamPort(Protocol):
    """A spawned process whose stdout is consumed incrementally."""

    @property
    def args(self) -> Sequence[str]: ...

    async def start(self) -> None:
        """Spawn the process (idempotent)."""
        ...

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None:
        """Kill the process if still running and reap it (idempotent)."""
        ...


@runtime_checkable
class ProcessRunnerPort(Protocol):
    """Spawns processes from an argument vector (never a shell string)."""

    async def run(
        self, args: Sequence[str], *, env: Mapping[str, str] | None = None
    ) -> ProcessResult:
        """Run to completion, capturing stdout and stderr."""
        ...

    async def probe(self, args: Sequence[str]) -> bool:
        """True if the command can be run and exits 0."""
        ...

    def open(
        self, args: Sequence[str], *, env: Mapping[str, str] | None = None
    ) -> ProcessStreamPort:
        """Return a lazily-spawned stdout pipe."""
        ...
