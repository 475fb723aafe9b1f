"""External executor contracts, the Salesforce CLI adapter and failure analysis."""

from deploy_sequencer.executor.base import ExecutorError, OrgSummary, RemoteExecutor, RemoteResult
from deploy_sequencer.executor.gaps import (
    OutputAnalysis,
    analyze_cli_output,
    component_problems,
    extract_json_payload,
    missing_components,
    parse_gaps,
)
from deploy_sequencer.executor.process import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
)
from deploy_sequencer.executor.sf_cli import SalesforceCliExecutor

__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "ExecutorError",
    "LocalSubprocessExecutor",
    "OrgSummary",
    "OutputAnalysis",
    "RemoteExecutor",
    "RemoteResult",
    "SalesforceCliExecutor",
    "analyze_cli_output",
    "component_problems",
    "extract_json_payload",
    "missing_components",
    "parse_gaps",
]
