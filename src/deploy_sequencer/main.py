"""Executable CLI entrypoint for ``deploy_sequencer``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExitCode(IntEnum):
    """Process exit-code contract."""

    SUCCESS = 0
    VALIDATION_FAILED = 1
    CONFIG_ERROR = 2
    EXECUTOR_ERROR = 3
    INTERNAL_ERROR = 4
    TIMED_OUT = 5


_KNOWN_CODES = frozenset(int(code) for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m deploy_sequencer`` and the ``deployseq`` script."""

    try:
        from deploy_sequencer.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits on --help and usage errors.
        return _normalize_exit_code(exc.code)
    except KeyboardInterrupt:
        _write_stderr("interrupted")
        return int(ExitCode.INTERNAL_ERROR)
    except Exception as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if isinstance(raw_code, int) and raw_code in _KNOWN_CODES:
        return raw_code
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    from deploy_sequencer.config import ConfigLoadError, ConfigValidationError
    from deploy_sequencer.executor import ExecutorError
    from deploy_sequencer.manifest import ManifestError
    from deploy_sequencer.planning import PlanFileError, SelectionError

    input_errors = (
        ConfigLoadError,
        ConfigValidationError,
        PlanFileError,
        SelectionError,
        ManifestError,
        FileNotFoundError,
        NotADirectoryError,
        PermissionError,
    )
    for item in _iter_exception_chain(exc):
        if isinstance(item, ExecutorError):
            return ExitCode.EXECUTOR_ERROR
        if isinstance(item, input_errors):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _iter_exception_chain(exc: BaseException) -> list[BaseException]:
    seen: set[int] = set()
    items: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        items.append(current)
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__context__ is not None and not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    return items


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
