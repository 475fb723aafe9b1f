"""Remote validation/deploy/retrieve executor contract."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from deploy_sequencer.domain.models import (
    ComponentProblem,
    DeployMode,
    GapDescriptor,
    JSONValue,
)


class ExecutorError(RuntimeError):
    """The external executor could not be run or produced unusable output."""


@dataclass(frozen=True, slots=True)
class RemoteResult:
    """Outcome of one remote operation.

    ``problems`` holds component-level failures; ``messages`` holds any
    additional top-level failure text. Both are empty on success.
    """

    success: bool
    problems: tuple[ComponentProblem, ...] = ()
    messages: tuple[str, ...] = ()
    raw_output: str = ""
    duration_ms: int = 0

    @property
    def error_lines(self) -> tuple[str, ...]:
        return tuple(problem.render() for problem in self.problems) + self.messages

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "success": self.success,
            "problems": [problem.to_dict() for problem in self.problems],
            "messages": list(self.messages),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class OrgSummary:
    alias: str
    username: str
    instance_url: str | None = None
    org_id: str | None = None
    is_default: bool = False
    is_scratch: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "alias": self.alias,
            "username": self.username,
            "instance_url": self.instance_url,
            "org_id": self.org_id,
            "is_default": self.is_default,
            "is_scratch": self.is_scratch,
        }


@runtime_checkable
class RemoteExecutor(Protocol):
    """Async interface to the remote target.

    Calls are long-latency and are never interrupted by the orchestrator;
    time budgets only decide whether another call is started.
    """

    async def submit(self, manifest_path: Path, mode: DeployMode) -> RemoteResult: ...

    async def retrieve_gap(self, gap: GapDescriptor) -> RemoteResult: ...


__all__ = [
    "ExecutorError",
    "OrgSummary",
    "RemoteExecutor",
    "RemoteResult",
]
