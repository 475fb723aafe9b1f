"""
deploy-sequencer — Salesforce CLI executor

File: src/deploy_sequencer/executor/sf_cli.py

Purpose
- Drive the ``sf`` command line for validate/deploy, gap retrieval, manifest
  retrieval, org discovery and API version lookup.

Functional requirements
- Every command runs with ``--json`` and ``SF_JSON_RESULT=1``; success is the
  JSON ``status == 0``, not the process exit code.
- Component failures are read from ``result.details.componentFailures``.
- Field gaps whose owning object is a record id are resolved against local
  object definitions before retrieval; unresolvable ids fail without a call.
- A binary that cannot be started raises ``ExecutorError``; anything the CLI
  itself reports is returned as a failed ``RemoteResult``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog

from deploy_sequencer.constants import (
    DEFAULT_API_VERSION,
    DEFAULT_CLI_BINARY,
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_WAIT_MINUTES,
)
from deploy_sequencer.domain.models import DeployMode, GapDescriptor, GapKind
from deploy_sequencer.executor.base import ExecutorError, OrgSummary, RemoteResult
from deploy_sequencer.executor.gaps import component_problems, extract_json_payload
from deploy_sequencer.executor.process import CommandExecutor, CommandResult, CommandSpec
from deploy_sequencer.inventory.workspace import FilesystemInventory

_ORG_GROUPS: tuple[tuple[str, bool], ...] = (
    ("scratchOrgs", True),
    ("nonScratchOrgs", False),
    ("other", False),
)


class SalesforceCliExecutor:
    """``RemoteExecutor`` backed by the Salesforce CLI."""

    def __init__(
        self,
        command_executor: CommandExecutor,
        inventory: FilesystemInventory,
        *,
        cli_binary: str = DEFAULT_CLI_BINARY,
        target_org: str | None = None,
        wait_minutes: int = DEFAULT_WAIT_MINUTES,
        command_timeout_seconds: float = DEFAULT_COMMAND_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        if wait_minutes <= 0:
            raise ValueError("wait_minutes must be > 0")
        self._commands = command_executor
        self._inventory = inventory
        self._cli_binary = cli_binary
        self._target_org = target_org
        self._wait_minutes = wait_minutes
        self._command_timeout_seconds = command_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def target_org(self) -> str | None:
        return self._target_org

    async def submit(self, manifest_path: Path, mode: DeployMode) -> RemoteResult:
        verb = "validate" if mode is DeployMode.VALIDATE else "start"
        argv = self._argv(
            "project",
            "deploy",
            verb,
            "--manifest",
            str(manifest_path),
            "--wait",
            str(self._wait_minutes),
        )
        return self._to_remote_result(await self._run(argv), failure="Deploy/Validate failed")

    async def retrieve_gap(self, gap: GapDescriptor) -> RemoteResult:
        resolved = gap
        if gap.kind is GapKind.CUSTOM_FIELD and gap.object_is_id:
            object_id = gap.object_name or ""
            object_name = self._inventory.resolve_object_id(object_id)
            if object_name is None:
                return RemoteResult(
                    success=False,
                    messages=(
                        f"Cannot resolve object ID {object_id} to object name. Please retrieve "
                        "the CustomObject first or specify the object API name.",
                    ),
                )
            resolved = gap.with_object(object_name)

        argv = self._argv("project", "retrieve", "start", "--metadata", resolved.metadata_spec)
        return self._to_remote_result(
            await self._run(argv),
            failure="Retrieve failed",
            lenient=True,
        )

    async def retrieve_manifest(self, manifest_path: Path) -> RemoteResult:
        argv = self._argv("project", "retrieve", "start", "--manifest", str(manifest_path))
        result = await self._run(argv)
        return self._to_remote_result(result, failure="Retrieve failed", lenient=True)

    async def api_version(self) -> str:
        """API version of the target org, or the built-in default when it cannot be read."""

        result = await self._run(self._argv("org", "display"))
        payload = extract_json_payload(result.stdout)
        if payload is not None and payload.get("status") == 0:
            org = payload.get("result")
            version = org.get("apiVersion") if isinstance(org, dict) else None
            if isinstance(version, str) and version.strip():
                return version.strip()
        self._logger.warning(
            "executor_api_version_fallback",
            target_org=self._target_org,
            fallback=DEFAULT_API_VERSION,
        )
        return DEFAULT_API_VERSION

    async def list_orgs(self) -> tuple[OrgSummary, ...]:
        result = await self._run((self._cli_binary, "org", "list", "--json"))
        payload = extract_json_payload(result.stdout)
        if payload is None:
            raise ExecutorError(f"cannot parse org list output: {_first_line(result)}")
        if payload.get("status") != 0:
            raise ExecutorError(str(payload.get("message") or "org list failed"))

        body = payload.get("result")
        if not isinstance(body, dict):
            return ()
        orgs: list[OrgSummary] = []
        for group, is_scratch in _ORG_GROUPS:
            entries = body.get(group)
            if not isinstance(entries, list):
                continue
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("username"):
                    continue
                username = str(entry["username"])
                orgs.append(
                    OrgSummary(
                        alias=str(entry.get("alias") or username),
                        username=username,
                        instance_url=_optional_str(entry.get("instanceUrl")),
                        org_id=_optional_str(entry.get("orgId")),
                        is_default=bool(entry.get("isDefaultUsername", False)),
                        is_scratch=is_scratch,
                    )
                )
        return tuple(orgs)

    def _argv(self, *parts: str) -> tuple[str, ...]:
        argv = [self._cli_binary, *parts]
        if self._target_org:
            argv.extend(("-o", self._target_org))
        argv.append("--json")
        return tuple(argv)

    async def _run(self, argv: tuple[str, ...]) -> CommandResult:
        spec = CommandSpec(
            argv=argv,
            cwd=str(self._inventory.project_root),
            env={"SF_JSON_RESULT": "1"},
            timeout_seconds=self._command_timeout_seconds,
        )
        result = await self._commands.run(spec)
        self._logger.info(
            "executor_command_finished",
            command=" ".join(argv[:4]),
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            duration_ms=result.duration_ms,
        )
        if result.error is not None and not result.timed_out:
            raise ExecutorError(f"cannot run {argv[0]}: {result.error}")
        return result

    def _to_remote_result(
        self,
        result: CommandResult,
        *,
        failure: str,
        lenient: bool = False,
    ) -> RemoteResult:
        if result.timed_out:
            return RemoteResult(
                success=False,
                messages=(result.error or "command timed out",),
                raw_output=result.stdout,
                duration_ms=result.duration_ms,
            )

        payload = extract_json_payload(result.stdout)
        if payload is None:
            # Retrieval output is sometimes not JSON; trust the exit code there.
            if lenient and result.exit_code == 0:
                return RemoteResult(
                    success=True, raw_output=result.stdout, duration_ms=result.duration_ms
                )
            return RemoteResult(
                success=False,
                messages=(f"{failure}: {_first_line(result)}",),
                raw_output=result.stdout,
                duration_ms=result.duration_ms,
            )

        success = payload.get("status") == 0
        if success:
            return RemoteResult(
                success=True, raw_output=result.stdout, duration_ms=result.duration_ms
            )
        message = payload.get("message")
        return RemoteResult(
            success=False,
            problems=component_problems(payload),
            messages=(str(message) if message else failure,),
            raw_output=result.stdout,
            duration_ms=result.duration_ms,
        )


def _first_line(result: CommandResult) -> str:
    for text in (result.stderr, result.stdout):
        for line in text.splitlines():
            if line.strip():
                return line.strip()
    return f"exit code {result.exit_code}"


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


__all__ = ["SalesforceCliExecutor"]
