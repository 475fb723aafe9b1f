"""
deploy-sequencer — shared test fixtures

File: tests/conftest.py

Purpose
- Build throwaway source-format projects on disk.
- Provide scripted stand-ins for the remote executor, the ``sf`` command
  runner and the wall clock so walks are deterministic and offline.
"""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from deploy_sequencer.domain.models import DeployMode, GapDescriptor
from deploy_sequencer.executor.base import RemoteResult
from deploy_sequencer.executor.process import CommandResult, CommandSpec
from deploy_sequencer.inventory.workspace import FilesystemInventory

_NS = 'xmlns="http://soap.sforce.com/2006/04/metadata"'


def _doc(root: str, body: str) -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<{root} {_NS}>\n{body}\n</{root}>\n'


class SourceWorkspace:
    """Writes assets into ``<root>/force-app/main/default`` using source-format layout."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.source = root / "force-app" / "main" / "default"
        self.source.mkdir(parents=True, exist_ok=True)
        (root / "sfdx-project.json").write_text(
            json.dumps({"packageDirectories": [{"path": "force-app", "default": True}]}),
            encoding="utf-8",
        )

    @property
    def inventory(self) -> FilesystemInventory:
        return FilesystemInventory(self.root)

    def write(self, relative: str, text: str) -> Path:
        path = self.source / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def add_class(self, name: str, body: str = "") -> Path:
        self.write(
            f"classes/{name}.cls-meta.xml",
            _doc("ApexClass", "    <apiVersion>59.0</apiVersion>\n    <status>Active</status>"),
        )
        return self.write(f"classes/{name}.cls", body or f"public class {name} {{}}\n")

    def add_flow(
        self,
        name: str,
        *,
        apex_actions: Sequence[str] = (),
        flow_actions: Sequence[str] = (),
        subflows: Sequence[str] = (),
        label: str | None = None,
    ) -> Path:
        parts = [f"    <label>{label or name}</label>", "    <status>Active</status>"]
        for action in apex_actions:
            parts.append(
                "    <actionCalls>\n"
                f"        <name>call_{action}</name>\n"
                f"        <actionName>{action}</actionName>\n"
                "        <actionType>apex</actionType>\n"
                "    </actionCalls>"
            )
        for action in flow_actions:
            parts.append(
                "    <actionCalls>\n"
                f"        <actionName>{action}</actionName>\n"
                "        <actionType>flow</actionType>\n"
                "    </actionCalls>"
            )
        for subflow in subflows:
            parts.append(f"    <subflows>\n        <flowName>{subflow}</flowName>\n    </subflows>")
        return self.write(f"flows/{name}.flow-meta.xml", _doc("Flow", "\n".join(parts)))

    def add_function(
        self,
        name: str,
        *,
        target: str | None = None,
        target_type: str = "flow",
        body: str | None = None,
    ) -> Path:
        if body is None:
            parts = [f"    <masterLabel>{name}</masterLabel>"]
            if target is not None:
                parts.append(f"    <invocationTarget>{target}</invocationTarget>")
                parts.append(f"    <invocationTargetType>{target_type}</invocationTargetType>")
            body = "\n".join(parts)
        return self.write(
            f"genAiFunctions/{name}/{name}.genAiFunction-meta.xml",
            _doc("GenAiFunction", body),
        )

    def add_plugin(self, name: str, *, functions: Sequence[str] = ()) -> Path:
        parts = [f"    <masterLabel>{name}</masterLabel>"]
        for function in functions:
            parts.append(
                f"    <genAiFunctions>\n        <functionName>{function}</functionName>\n"
                "    </genAiFunctions>"
            )
        return self.write(
            f"genAiPlugins/{name}/{name}.genAiPlugin-meta.xml",
            _doc("GenAiPlugin", "\n".join(parts)),
        )

    def add_planner(
        self,
        name: str,
        *,
        plugins: Sequence[str] = (),
        functions: Sequence[str] = (),
    ) -> Path:
        parts = [f"    <masterLabel>{name}</masterLabel>"]
        for plugin in plugins:
            parts.append(
                f"    <localTopicLinks>\n        <genAiPluginName>{plugin}</genAiPluginName>\n"
                "    </localTopicLinks>"
            )
        for function in functions:
            parts.append(
                "    <localActionLinks>\n"
                f"        <genAiFunctionName>{function}</genAiFunctionName>\n"
                "    </localActionLinks>"
            )
        return self.write(
            f"genAiPlannerBundles/{name}/{name}.genAiPlannerBundle",
            _doc("GenAiPlannerBundle", "\n".join(parts)),
        )

    def add_bot(self, name: str, versions: Mapping[str, str | None]) -> Path:
        """``versions`` maps a version label to the planner it uses (or ``None``)."""

        entries = "\n".join(
            f"    <botVersions>\n        <fullName>{label}</fullName>\n    </botVersions>"
            for label in versions
        )
        for label, planner in versions.items():
            body = f"    <fullName>{label}</fullName>"
            if planner is not None:
                body += (
                    "\n    <conversationDefinitionPlanners>\n"
                    f"        <genAiPlannerName>{planner}</genAiPlannerName>\n"
                    "    </conversationDefinitionPlanners>"
                )
            self.write(f"bots/{name}/{label}.botVersion-meta.xml", _doc("BotVersion", body))
        return self.write(
            f"bots/{name}/{name}.bot-meta.xml",
            _doc("Bot", f"    <label>{name}</label>\n{entries}"),
        )

    def add_object(self, name: str, *, object_id: str | None = None) -> Path:
        body = f"    <label>{name}</label>"
        if object_id is not None:
            body += f"\n    <!-- id {object_id} -->"
        return self.write(f"objects/{name}/{name}.object-meta.xml", _doc("CustomObject", body))


def build_support_bot(workspace: SourceWorkspace, *, include_c2: bool = True) -> SourceWorkspace:
    """Bot chain from SupportBot down to the OrderService Apex class.

    The planner also links function ``C2``; with ``include_c2=False`` it is
    absent locally.
    """

    workspace.add_class("OrderService")
    workspace.add_flow("Lookup_Order", apex_actions=["OrderService"])
    workspace.add_function("LookupOrder", target="Lookup_Order", target_type="flow")
    if include_c2:
        workspace.add_function("C2", target="OrderService", target_type="apex")
    workspace.add_plugin("OrderPlugin", functions=["LookupOrder"])
    workspace.add_planner("SupportPlanner", plugins=["OrderPlugin"], functions=["C2"])
    workspace.add_bot("SupportBot", {"v1": "SupportPlanner"})
    return workspace


@pytest.fixture
def workspace(tmp_path: Path) -> SourceWorkspace:
    return SourceWorkspace(tmp_path / "project")


@pytest.fixture
def support_bot_workspace(workspace: SourceWorkspace) -> SourceWorkspace:
    return build_support_bot(workspace)


@pytest.fixture
def support_bot_without_c2(workspace: SourceWorkspace) -> SourceWorkspace:
    return build_support_bot(workspace, include_c2=False)


# ---------------------------------------------------------------------------
# Remote executor doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass(slots=True)
class SubmitCall:
    manifest_path: Path
    mode: DeployMode
    manifest_text: str


@dataclass(slots=True)
class ScriptedExecutor:
    """``RemoteExecutor`` that replays queued results; success once the queue is empty."""

    submit_results: deque[RemoteResult] = field(default_factory=deque)
    retrieve_results: deque[RemoteResult] = field(default_factory=deque)
    submits: list[SubmitCall] = field(default_factory=list)
    retrievals: list[GapDescriptor] = field(default_factory=list)
    on_submit: Callable[[SubmitCall], None] | None = None

    def queue_submits(self, results: Iterable[RemoteResult]) -> ScriptedExecutor:
        self.submit_results.extend(results)
        return self

    def queue_retrievals(self, results: Iterable[RemoteResult]) -> ScriptedExecutor:
        self.retrieve_results.extend(results)
        return self

    async def submit(self, manifest_path: Path, mode: DeployMode) -> RemoteResult:
        call = SubmitCall(
            manifest_path=manifest_path,
            mode=mode,
            manifest_text=manifest_path.read_text(encoding="utf-8"),
        )
        self.submits.append(call)
        if self.on_submit is not None:
            self.on_submit(call)
        if self.submit_results:
            return self.submit_results.popleft()
        return RemoteResult(success=True)

    async def retrieve_gap(self, gap: GapDescriptor) -> RemoteResult:
        self.retrievals.append(gap)
        if self.retrieve_results:
            return self.retrieve_results.popleft()
        return RemoteResult(success=True)


@pytest.fixture
def scripted_executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# ``sf`` command runner double
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FakeCommandExecutor:
    """``CommandExecutor`` answering by argv prefix; records every spec it sees."""

    responses: list[tuple[tuple[str, ...], dict[str, object]]] = field(default_factory=list)
    specs: list[CommandSpec] = field(default_factory=list)

    def respond(
        self,
        prefix: Sequence[str],
        *,
        payload: Mapping[str, object] | None = None,
        stdout: str | None = None,
        exit_code: int | None = 0,
        timed_out: bool = False,
        error: str | None = None,
    ) -> FakeCommandExecutor:
        """Answer commands whose argv starts with ``prefix``; later rules are checked last."""

        text = stdout if stdout is not None else json.dumps(payload or {"status": 0})
        self.responses.append(
            (
                tuple(prefix),
                {
                    "exit_code": None if timed_out else exit_code,
                    "stdout": text,
                    "timed_out": timed_out,
                    "error": error,
                },
            )
        )
        return self

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.specs.append(spec)
        for prefix, fields in self.responses:
            if tuple(spec.argv[: len(prefix)]) == prefix:
                return CommandResult(
                    argv=spec.argv,
                    exit_code=fields["exit_code"],  # type: ignore[arg-type]
                    stdout=str(fields["stdout"]),
                    stderr="",
                    duration_ms=5,
                    timed_out=bool(fields["timed_out"]),
                    error=fields["error"],  # type: ignore[arg-type]
                )
        return CommandResult(
            argv=spec.argv,
            exit_code=0,
            stdout=json.dumps({"status": 0, "result": {}}),
            stderr="",
            duration_ms=5,
        )

    @property
    def argvs(self) -> list[tuple[str, ...]]:
        return [tuple(spec.argv) for spec in self.specs]


@pytest.fixture
def fake_commands() -> FakeCommandExecutor:
    return FakeCommandExecutor()
