"""Runs ``sf`` as a local subprocess: captured output, a hard timeout, optional redaction."""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

TextRedactor = Callable[[str], str]

# Deploy reports for large bundles stay well below this.
_DEFAULT_MAX_OUTPUT_CHARS = 2_000_000


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One CLI invocation. ``env`` is layered over the current process environment."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        argv = tuple(self.argv)
        if not argv or not all(isinstance(part, str) and part for part in argv):
            raise ValueError("CommandSpec.argv: must be a non-empty sequence of non-empty strings")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds: must be > 0 when provided")
        object.__setattr__(self, "argv", argv)
        object.__setattr__(self, "env", dict(sorted(self.env.items())))


@dataclass(frozen=True, slots=True)
class CommandResult:
    """What came back from one invocation. ``exit_code`` is None when the process never finished."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if self.duration_ms < 0:
            raise ValueError("CommandResult.duration_ms: must be >= 0")
        if self.timed_out and self.exit_code is not None:
            raise ValueError("CommandResult.exit_code: must be None when timed_out is true")


@runtime_checkable
class CommandExecutor(Protocol):
    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor:
    """Spawns commands with ``asyncio``; a timed-out or cancelled process is killed."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int = _DEFAULT_MAX_OUTPUT_CHARS,
        redact: TextRedactor | None = None,
    ) -> None:
        if default_timeout_seconds is not None and default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0 when provided")
        if max_output_chars <= 0:
            raise ValueError("max_output_chars must be > 0")
        self._default_timeout_seconds = default_timeout_seconds
        self._max_output_chars = max_output_chars
        self._redact = redact

    async def run(self, spec: CommandSpec) -> CommandResult:
        started = time.monotonic()
        timeout = spec.timeout_seconds or self._default_timeout_seconds
        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env={**os.environ, **spec.env},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_since(started),
                error=self._clean(str(exc)),
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            stdout, stderr = await _kill(process)
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout=self._clean(_decode(stdout)),
                stderr=self._clean(_decode(stderr)),
                duration_ms=_since(started),
                timed_out=True,
                error=f"command timed out after {timeout:.3f}s",
            )
        except asyncio.CancelledError:
            await _kill(process)
            raise

        return CommandResult(
            argv=spec.argv,
            exit_code=process.returncode,
            stdout=self._clean(_decode(stdout)),
            stderr=self._clean(_decode(stderr)),
            duration_ms=_since(started),
        )

    def _clean(self, text: str) -> str:
        if len(text) > self._max_output_chars:
            omitted = len(text) - self._max_output_chars
            text = f"{text[: self._max_output_chars]}\n...[truncated {omitted} chars]"
        return self._redact(text) if self._redact is not None else text


async def _kill(process: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
    with suppress(ProcessLookupError):
        process.kill()
    return await process.communicate()


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").replace("\r\n", "\n").replace("\r", "\n")


def _since(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "TextRedactor",
]
