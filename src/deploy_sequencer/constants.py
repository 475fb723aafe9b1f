"""Stable constants shared across planner planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
PLAN_FILE_SCHEMA_VERSION: Final[int] = 1

# Metadata API version stamped into manifests when the target org cannot be asked.
DEFAULT_API_VERSION: Final[str] = "59.0"
PACKAGE_XML_NAMESPACE: Final[str] = "http://soap.sforce.com/2006/04/metadata"

# Source-format project layout.
DEFAULT_SOURCE_DIR: Final[PurePosixPath] = PurePosixPath("force-app/main/default")
OBJECTS_DIR: Final[str] = "objects"

# Default runtime paths (relative to the project root unless overridden by config).
ARTIFACT_DIR: Final[PurePosixPath] = PurePosixPath(".deploy-sequencer/manifests")
LOG_DIR: Final[PurePosixPath] = PurePosixPath(".deploy-sequencer/logs")

# Remote walk bounds.
DEFAULT_MAX_GAP_RETRIES: Final[int] = 3
DEFAULT_TIME_BUDGET_SECONDS: Final[float] = 55.0
DEFAULT_SAFETY_MARGIN_SECONDS: Final[float] = 5.0
DEFAULT_WAIT_MINUTES: Final[int] = 30
DEFAULT_COMMAND_TIMEOUT_SECONDS: Final[float] = 1800.0
DEFAULT_CLI_BINARY: Final[str] = "sf"

__all__ = [
    "ARTIFACT_DIR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_API_VERSION",
    "DEFAULT_CLI_BINARY",
    "DEFAULT_COMMAND_TIMEOUT_SECONDS",
    "DEFAULT_MAX_GAP_RETRIES",
    "DEFAULT_SAFETY_MARGIN_SECONDS",
    "DEFAULT_SOURCE_DIR",
    "DEFAULT_TIME_BUDGET_SECONDS",
    "DEFAULT_WAIT_MINUTES",
    "LOG_DIR",
    "OBJECTS_DIR",
    "PACKAGE_XML_NAMESPACE",
    "PLAN_FILE_SCHEMA_VERSION",
]
