"""Command-line interface router for deploy-sequencer."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from deploy_sequencer.config import effective_config, load_config
from deploy_sequencer.control_plane import DeploymentOrchestrator
from deploy_sequencer.domain.models import (
    LAYER_ORDER,
    AssetCategory,
    AssetIdentifier,
    DeployMode,
    WalkResult,
    WalkState,
    parse_category,
)
from deploy_sequencer.executor import (
    CommandExecutor,
    LocalSubprocessExecutor,
    SalesforceCliExecutor,
    analyze_cli_output,
)
from deploy_sequencer.extraction import ReferenceExtractor
from deploy_sequencer.inventory import FilesystemInventory
from deploy_sequencer.main import ExitCode
from deploy_sequencer.manifest import manifest_identifiers, parse_package_xml
from deploy_sequencer.observability import configure_structlog, setup_logging, shutdown_logging
from deploy_sequencer.observability.logging import default_log_redactor
from deploy_sequencer.planning import (
    BatchPlanner,
    DependencyClosureBuilder,
    load_plan,
    parse_selection,
    save_plan,
    summarize,
    validate_plan,
)
from deploy_sequencer.ui.render import CLIRenderer, create_renderer
from deploy_sequencer.utils.fs import display_path

_WALK_EXIT_CODES: dict[WalkState, ExitCode] = {
    WalkState.COMPLETED: ExitCode.SUCCESS,
    WalkState.FAILED: ExitCode.VALIDATION_FAILED,
    WalkState.TIMED_OUT: ExitCode.TIMED_OUT,
}


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.CONFIG_ERROR)

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class _Context:
    """Effective settings for one command invocation."""

    config: dict[str, Any]
    inventory: FilesystemInventory
    renderer: CLIRenderer
    as_json: bool
    command_executor: CommandExecutor | None

    @property
    def project_root(self) -> Path:
        return self.inventory.project_root

    def section(self, name: str) -> dict[str, Any]:
        value = self.config.get(name)
        return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported workflows."""

    parser = argparse.ArgumentParser(
        prog="deployseq",
        description=(
            "deploy-sequencer: dependency-ordered batch planning and validation for\n"
            "Salesforce source-format projects.\n\n"
            "Common workflows:\n"
            "  deployseq plan Bot:SupportBot           Plan everything SupportBot needs\n"
            "  deployseq validate Bot:SupportBot       Validate the plan batch by batch\n"
            "  deployseq validate --plan plan.json     Validate a saved plan\n"
            "  deployseq analyze-output result.json    Explain a failed sf response\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project-root",
        default=None,
        help="Project root holding sfdx-project.json (default: current directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: <project-root>/deploy_sequencer.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Config profile overlay name.")
    common.add_argument("--target-org", default=None, help="Org alias or username for sf.")
    common.add_argument("--json", action="store_true", help="Emit JSON output")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    inventory_parser = subparsers.add_parser(
        "inventory",
        parents=[common],
        help="List assets present in the local workspace",
        description=(
            "List local assets by category.\n\n"
            "Examples:\n"
            "  deployseq inventory\n"
            "  deployseq inventory --category GenAiFunction --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    inventory_parser.add_argument("--category", default=None, help="Only list this category")
    inventory_parser.set_defaults(handler=_cmd_inventory)

    analyze_parser = subparsers.add_parser(
        "analyze",
        parents=[common],
        help="Show the references of one asset",
        description=(
            "Extract the references of a single asset, or its full closure.\n\n"
            "Examples:\n"
            "  deployseq analyze GenAiPlugin:Orders\n"
            "  deployseq analyze Bot:SupportBot --recursive\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    analyze_parser.add_argument("asset", help="Asset as Category:Name (or a bare name)")
    analyze_parser.add_argument(
        "--recursive", action="store_true", help="Resolve the full dependency closure"
    )
    analyze_parser.set_defaults(handler=_cmd_analyze)

    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common],
        help="Build a layered deployment plan",
        description=(
            "Resolve the selection's dependency closure and order it into batches.\n\n"
            "Examples:\n"
            "  deployseq plan Bot:SupportBot\n"
            "  deployseq plan Flow:Route_Case ApexClass:CaseUtil --output plan.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    plan_parser.add_argument("selection", nargs="*", help="Assets as Category:Name")
    plan_parser.add_argument("--output", "-o", default=None, help="Write the plan (json|yaml)")
    plan_parser.set_defaults(handler=_cmd_plan)

    for name, mode, summary in (
        ("validate", DeployMode.VALIDATE, "Check-only validation, batch by batch"),
        ("deploy", DeployMode.DEPLOY, "Deploy batch by batch"),
    ):
        walk_parser = subparsers.add_parser(
            name,
            parents=[common],
            help=summary,
            description=(
                f"{summary}, retrieving missing fields/objects between attempts.\n\n"
                "Examples:\n"
                f"  deployseq {name} Bot:SupportBot --target-org dev\n"
                f"  deployseq {name} --plan plan.json --start-batch 3\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        walk_parser.add_argument("selection", nargs="*", help="Assets as Category:Name")
        walk_parser.add_argument("--plan", dest="plan_path", default=None, help="Saved plan file")
        walk_parser.add_argument(
            "--start-batch", type=int, default=1, help="Resume from this batch (default: 1)"
        )
        walk_parser.set_defaults(handler=_cmd_walk, mode=mode)

    retrieve_parser = subparsers.add_parser(
        "retrieve",
        parents=[common],
        help="Retrieve the contents of a package.xml from the org",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    retrieve_parser.add_argument("--manifest", required=True, help="package.xml to retrieve")
    retrieve_parser.set_defaults(handler=_cmd_retrieve)

    output_parser = subparsers.add_parser(
        "analyze-output",
        parents=[common],
        help="Explain the errors in saved sf CLI output",
        description=(
            "Parse `sf project deploy ... --json` output and list problems,\n"
            "recoverable gaps and suggested next steps.\n\n"
            "Examples:\n"
            "  deployseq analyze-output result.json\n"
            "  sf project deploy validate ... --json | deployseq analyze-output -\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    output_parser.add_argument("source", help="File with the output, or - for stdin")
    output_parser.set_defaults(handler=_cmd_analyze_output)

    orgs_parser = subparsers.add_parser(
        "orgs", parents=[common], help="List orgs known to the sf CLI"
    )
    orgs_parser.set_defaults(handler=_cmd_orgs)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show the effective (redacted) configuration"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    command_executor: CommandExecutor | None = None,
) -> int:
    """Parse argv, route to a command handler, and return the process exit code.

    ``command_executor`` replaces the local subprocess runner for every ``sf``
    invocation, which lets callers drive the CLI without the binary installed.
    """

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    configure_structlog()
    namespace.command_executor = command_executor
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _cmd_inventory(args: argparse.Namespace) -> int:
    ctx = _context(args)
    categories: tuple[AssetCategory, ...] = LAYER_ORDER
    if args.category:
        category = parse_category(args.category)
        if category is None:
            raise CLIError(f"unknown category {args.category!r}")
        categories = (category,)

    descriptors = [item for category in categories for item in ctx.inventory.describe(category)]
    if ctx.as_json:
        payload = [item.to_dict() for item in descriptors]
        for entry in payload:
            entry["path"] = display_path(entry["path"] or "", ctx.project_root)
        _emit_json({"command": "inventory", "count": len(payload), "assets": payload})
        return int(ExitCode.SUCCESS)

    renderer = ctx.renderer
    renderer.heading(f"Local assets under {display_path(ctx.inventory.source_root, Path.cwd())}")
    for category in categories:
        rows = [
            (item.identifier.name, item.label or "", item.status or "")
            for item in descriptors
            if item.identifier.category is category
        ]
        renderer.table(("Name", "Label", "Status"), rows, title=f"{category} ({len(rows)})")
    if not descriptors:
        renderer.warning("no assets found; check --project-root and project.source_dir")
    return int(ExitCode.SUCCESS)


def _cmd_analyze(args: argparse.Namespace) -> int:
    ctx = _context(args)
    identifier = _single_identifier(args.asset)
    if not ctx.inventory.exists(identifier):
        raise CLIError(f"asset not found locally: {identifier.key}")

    if args.recursive:
        builder = _closure_builder(ctx)
        closure = asyncio.run(builder.build_async([identifier]))
        if ctx.as_json:
            _emit_json(
                {
                    "command": "analyze",
                    "asset": identifier.key,
                    "recursive": True,
                    "members": [member.key for member in closure.members],
                    "references": [reference.to_dict() for reference in closure.references],
                    "skipped": [item.to_dict() for item in closure.skipped],
                    "warnings": list(closure.warnings),
                }
            )
            return int(ExitCode.SUCCESS)
        renderer = ctx.renderer
        renderer.heading(f"Dependency closure of {identifier.key}")
        for category, members in closure.by_category().items():
            renderer.section(f"{category} ({len(members)})")
            renderer.items([member.name for member in members])
        if closure.skipped:
            renderer.section("Skipped (not found locally):")
            for skipped in closure.skipped:
                renderer.warning(skipped.warning)
        return int(ExitCode.SUCCESS)

    extractor = ReferenceExtractor()
    sources = [identifier]
    if identifier.category is AssetCategory.BOT:
        sources.extend(ctx.inventory.bot_versions(identifier.name))
    references = [
        reference
        for source in sources
        for reference in extractor.extract(
            source.category, source.name, ctx.inventory.read_definition(source)
        )
    ]
    rows = [
        (
            reference.target.key,
            str(reference.kind),
            "yes" if ctx.inventory.exists(reference.target) else "no",
        )
        for reference in references
    ]
    if ctx.as_json:
        _emit_json(
            {
                "command": "analyze",
                "asset": identifier.key,
                "recursive": False,
                "references": [
                    {**reference.to_dict(), "found_locally": row[2] == "yes"}
                    for reference, row in zip(references, rows, strict=True)
                ],
            }
        )
        return int(ExitCode.SUCCESS)

    renderer = ctx.renderer
    renderer.heading(f"References of {identifier.key}")
    if not rows:
        renderer.text("  (none)")
    renderer.table(("Target", "Kind", "Local"), rows)
    return int(ExitCode.SUCCESS)


def _cmd_plan(args: argparse.Namespace) -> int:
    ctx = _context(args)
    selection = _selection(args.selection)
    planner = BatchPlanner(_closure_builder(ctx))
    plan = asyncio.run(planner.build_plan_async(selection))
    validation = validate_plan(plan)
    summary = summarize(plan)

    written: Path | None = None
    if args.output:
        written = save_plan(plan, _resolve_path(args.output, Path.cwd()))

    if ctx.as_json:
        _emit_json(
            {
                "command": "plan",
                "plan": plan.to_dict(),
                "validation": validation.to_dict(),
                "summary": summary.to_dict(),
                "fingerprint": plan.fingerprint,
                "output": written.as_posix() if written is not None else None,
            }
        )
        return int(ExitCode.SUCCESS if validation.valid else ExitCode.VALIDATION_FAILED)

    renderer = ctx.renderer
    renderer.heading("Deployment plan")
    renderer.kv("Batches", summary.total_batches)
    renderer.kv("Items", summary.total_items)
    renderer.section("Batch order:")
    renderer.items(summary.batch_order, prefix="")
    if renderer.verbose:
        for batch in plan.batches:
            renderer.section(f"Batch {batch.batch_number}: {batch.category}")
            renderer.items(batch.names)
    _render_warnings(renderer, plan.warnings)
    if not validation.valid:
        renderer.section("Plan problems:")
        for error in validation.errors:
            renderer.fail(error)
    if written is not None:
        renderer.blank()
        renderer.kv("Plan written to", display_path(written, Path.cwd()))
        renderer.next_steps([f"deployseq validate --plan {display_path(written, Path.cwd())}"])
    return int(ExitCode.SUCCESS if validation.valid else ExitCode.VALIDATION_FAILED)


def _cmd_walk(args: argparse.Namespace) -> int:
    ctx = _context(args)
    mode: DeployMode = args.mode
    if args.plan_path and args.selection:
        raise CLIError("give either --plan or a selection, not both")

    observability = ctx.section("observability")
    handle = setup_logging(
        observability,
        run_id=_new_run_id(),
        log_dir=ctx.section("paths").get("log_dir"),
    )
    try:
        with structlog.contextvars.bound_contextvars(run_id=handle.run_id):
            result = asyncio.run(_walk(ctx, args, mode))
    finally:
        shutdown_logging(handle)

    if ctx.as_json:
        _emit_json({"command": str(mode), "run_id": handle.run_id, **result.to_dict()})
    else:
        _render_walk(ctx.renderer, result, ctx.project_root)
    return int(_WALK_EXIT_CODES.get(result.state, ExitCode.INTERNAL_ERROR))


async def _walk(ctx: _Context, args: argparse.Namespace, mode: DeployMode) -> WalkResult:
    if args.plan_path:
        plan = load_plan(_resolve_path(args.plan_path, Path.cwd()))
    else:
        selection = _selection(args.selection)
        if not selection:
            raise CLIError("nothing to do: give a selection or --plan")
        plan = await BatchPlanner(_closure_builder(ctx)).build_plan_async(selection)

    validation = validate_plan(plan)
    if not validation.valid:
        raise CLIError("invalid deployment plan:\n- " + "\n- ".join(validation.errors))
    if not any(batch.batch_number == args.start_batch for batch in plan.batches):
        raise CLIError(f"--start-batch {args.start_batch} is outside 1..{len(plan.batches)}")

    executor = _sf_executor(ctx)
    target = ctx.section("target")
    api_version = target.get("api_version") or await executor.api_version()
    settings = ctx.section("validation")
    orchestrator = DeploymentOrchestrator(
        executor,
        ctx.inventory,
        _artifact_dir(ctx),
        max_gap_retries=settings["max_gap_retries"],
        time_budget_seconds=settings["time_budget_seconds"],
        safety_margin_seconds=settings["safety_margin_seconds"],
        api_version=api_version,
    )
    return await orchestrator.run(plan, mode, start_batch=args.start_batch)


def _cmd_retrieve(args: argparse.Namespace) -> int:
    ctx = _context(args)
    manifest_path = _resolve_path(args.manifest, Path.cwd())
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"cannot read manifest {manifest_path}: {exc}") from exc
    groups, _version = parse_package_xml(text)
    identifiers = manifest_identifiers(groups)

    result = asyncio.run(_sf_executor(ctx).retrieve_manifest(manifest_path))
    if ctx.as_json:
        _emit_json(
            {
                "command": "retrieve",
                "manifest": manifest_path.as_posix(),
                "items": [item.key for item in identifiers],
                **result.to_dict(),
            }
        )
    else:
        renderer = ctx.renderer
        renderer.heading(f"Retrieve {display_path(manifest_path, Path.cwd())}")
        renderer.kv("Items", len(identifiers))
        if result.success:
            renderer.ok("retrieved")
        else:
            for line in result.error_lines:
                renderer.fail(line)
    return int(ExitCode.SUCCESS if result.success else ExitCode.VALIDATION_FAILED)


def _cmd_analyze_output(args: argparse.Namespace) -> int:
    if args.source == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(args.source).read_text(encoding="utf-8")
        except OSError as exc:
            raise CLIError(f"cannot read {args.source}: {exc}") from exc

    analysis = analyze_cli_output(text)
    if args.json:
        _emit_json({"command": "analyze-output", **analysis.to_dict()})
        return int(ExitCode.SUCCESS)

    renderer = create_renderer(verbose=args.verbose)
    renderer.heading("sf output analysis")
    if analysis.success is None:
        renderer.kv("Status", "unknown (not JSON)")
    else:
        renderer.kv("Status", "success" if analysis.success else "failed")
    if analysis.problems:
        renderer.table(
            ("Type", "Component", "Line", "Problem"),
            [
                (
                    problem.component_type,
                    problem.component_name,
                    problem.line if problem.line is not None else "",
                    problem.problem,
                )
                for problem in analysis.problems
            ],
            title=f"Problems ({len(analysis.problems)})",
        )
    if analysis.messages and not analysis.problems:
        renderer.section("Messages:")
        renderer.items(analysis.messages)
    if analysis.gaps:
        renderer.section("Recoverable gaps:")
        renderer.items([gap.metadata_spec for gap in analysis.gaps])
    if analysis.missing:
        renderer.section("Missing components:")
        renderer.items([item.key for item in analysis.missing])
    if analysis.hints:
        renderer.section("Hints:")
        renderer.items(analysis.hints)
    return int(ExitCode.SUCCESS)


def _cmd_orgs(args: argparse.Namespace) -> int:
    ctx = _context(args)
    orgs = asyncio.run(_sf_executor(ctx).list_orgs())
    if ctx.as_json:
        _emit_json(
            {
                "command": "orgs",
                "orgs": [org.to_dict() for org in orgs],
            }
        )
        return int(ExitCode.SUCCESS)

    renderer = ctx.renderer
    renderer.heading("Authenticated orgs")
    if not orgs:
        renderer.text("  (none) - authenticate with `sf org login web`")
    renderer.table(
        ("Alias", "Username", "Type", "Default"),
        [
            (
                org.alias,
                org.username,
                "scratch" if org.is_scratch else "org",
                "*" if org.is_default else "",
            )
            for org in orgs
        ],
    )
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    redacted = effective_config(config)
    payload: dict[str, object] = {
        "command": "config",
        "active_profile": args.profile,
        "config": redacted,
    }
    if args.json:
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    renderer = create_renderer(verbose=args.verbose)
    renderer.kv("Active profile", args.profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    project_root = args.project_root
    overrides: dict[str, object] = {
        "project.root": (
            Path(project_root).expanduser().resolve().as_posix() if project_root else None
        ),
        "target.org": args.target_org,
    }
    return load_config(
        args.config_path,
        project_root=project_root,
        profile=args.profile,
        cli_overrides=overrides,
    )


def _context(args: argparse.Namespace) -> _Context:
    config = _load_effective_config(args)
    project = config["project"]
    root = Path(project["root"])
    if not root.is_dir():
        raise CLIError(f"project root does not exist: {root}")
    return _Context(
        config=config,
        inventory=FilesystemInventory(root, source_dir=project["source_dir"]),
        renderer=create_renderer(verbose=args.verbose),
        as_json=bool(args.json),
        command_executor=getattr(args, "command_executor", None),
    )


def _closure_builder(ctx: _Context) -> DependencyClosureBuilder:
    return DependencyClosureBuilder(
        ctx.inventory, max_workers=ctx.section("closure").get("max_workers", 8)
    )


def _sf_executor(ctx: _Context) -> SalesforceCliExecutor:
    target = ctx.section("target")
    settings = ctx.section("validation")
    redact_secrets = bool(ctx.section("observability").get("redact_secrets", True))
    command_executor = ctx.command_executor
    if command_executor is None:
        command_executor = LocalSubprocessExecutor(
            default_timeout_seconds=settings.get("command_timeout_seconds"),
            redact=_redact_text if redact_secrets else None,
        )
    return SalesforceCliExecutor(
        command_executor,
        ctx.inventory,
        cli_binary=target.get("cli_binary", "sf"),
        target_org=target.get("org"),
        wait_minutes=settings.get("wait_minutes", 30),
        command_timeout_seconds=settings.get("command_timeout_seconds", 1800.0),
    )


def _redact_text(text: str) -> str:
    redacted = default_log_redactor(text)
    return redacted if isinstance(redacted, str) else text


def _artifact_dir(ctx: _Context) -> Path:
    return Path(ctx.section("paths")["artifact_dir"])


def _selection(tokens: Sequence[str]) -> tuple[AssetIdentifier, ...]:
    return parse_selection(tokens)


def _single_identifier(token: str) -> AssetIdentifier:
    parsed = parse_selection([token])
    if not parsed:
        raise CLIError("an asset is required, e.g. GenAiPlugin:Orders")
    return parsed[0]


def _resolve_path(raw: str, base: Path) -> Path:
    candidate = Path(raw).expanduser()
    return candidate if candidate.is_absolute() else (base / candidate).resolve()


def _new_run_id() -> str:
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def _render_warnings(renderer: CLIRenderer, warnings: Sequence[str]) -> None:
    if not warnings:
        return
    renderer.section("Notes:")
    for warning in warnings:
        if warning.startswith("Added "):
            renderer.detail(warning)
        else:
            renderer.warning(warning)


def _render_walk(renderer: CLIRenderer, result: WalkResult, project_root: Path) -> None:
    renderer.heading(f"{str(result.mode).capitalize()} run: {result.state}")
    renderer.kv("Batches", f"{len(result.succeeded_batches)}/{result.total_batches} passed")
    if result.start_batch > 1:
        renderer.kv("Started at batch", result.start_batch)
    renderer.blank()
    for outcome in result.outcomes:
        label = (
            f"Batch {outcome.batch_number} ({outcome.category}): {outcome.items_validated} items"
        )
        if outcome.retries:
            label += f", {outcome.retries} gap retries"
        if outcome.success:
            renderer.ok(label)
        else:
            renderer.fail(label)
            renderer.items(outcome.errors[:20])
            if outcome.gaps:
                renderer.text("    gaps: " + ", ".join(gap.metadata_spec for gap in outcome.gaps))
        if outcome.manifest_path:
            renderer.detail(f"manifest: {display_path(outcome.manifest_path, project_root)}")
    if result.suggestion:
        renderer.section("Suggestion:")
        renderer.text(f"  {result.suggestion}")
    if result.state is WalkState.TIMED_OUT and result.next_batch_to_validate is not None:
        renderer.next_steps(
            [f"deployseq {result.mode} --plan <plan> --start-batch {result.next_batch_to_validate}"]
        )


__all__ = ["CLIError", "build_parser", "run_cli"]
