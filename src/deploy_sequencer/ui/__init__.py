"""Command-line surface and plain-text rendering."""

from deploy_sequencer.ui.cli import CLIError, build_parser, run_cli
from deploy_sequencer.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
