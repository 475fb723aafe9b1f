"""
deploy-sequencer — local asset inventory

File: src/deploy_sequencer/inventory/workspace.py

Purpose
- Answer "which assets exist locally, and where is their definition?" for a
  source-format project, using the fixed per-category directory conventions.

Functional requirements
- Existence checks never raise; unreadable definitions read as ``None``.
- Bot versions are discovered from files colocated with their bot.
- Listing is deterministic (sorted by name).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol, runtime_checkable
from xml.etree import ElementTree as ET

import structlog

from deploy_sequencer.constants import DEFAULT_SOURCE_DIR, OBJECTS_DIR
from deploy_sequencer.domain.models import AssetCategory, AssetIdentifier

_LOGGER = structlog.get_logger(__name__)

_CLASS_SUFFIX: Final[str] = ".cls"
_FLOW_SUFFIX: Final[str] = ".flow-meta.xml"
_BOT_SUFFIX: Final[str] = ".bot-meta.xml"
_BOT_VERSION_SUFFIX: Final[str] = ".botVersion-meta.xml"
_OBJECT_SUFFIX: Final[str] = ".object-meta.xml"

# Bundle-style categories: ``<dir>/<Name>/<Name>.<ext>[-meta.xml]``
# or flat ``<dir>/<Name>.<ext>-meta.xml``.
_BUNDLE_LAYOUT: Final[dict[AssetCategory, tuple[str, str]]] = {
    AssetCategory.GEN_AI_FUNCTION: ("genAiFunctions", "genAiFunction"),
    AssetCategory.GEN_AI_PLUGIN: ("genAiPlugins", "genAiPlugin"),
    AssetCategory.GEN_AI_PLANNER_BUNDLE: ("genAiPlannerBundles", "genAiPlannerBundle"),
}

_LABEL_FIELDS: Final[tuple[str, ...]] = ("masterLabel", "label", "developerName")


@dataclass(frozen=True, slots=True)
class AssetDescriptor:
    """Listing entry for one locally present asset."""

    identifier: AssetIdentifier
    path: Path
    label: str | None = None
    description: str | None = None
    api_version: str | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "category": str(self.identifier.category),
            "name": self.identifier.name,
            "path": self.path.as_posix(),
            "label": self.label,
            "description": self.description,
            "api_version": self.api_version,
            "status": self.status,
        }


@runtime_checkable
class AssetInventory(Protocol):
    """Local asset existence oracle consulted by the closure builder."""

    def list_names(self, category: AssetCategory) -> tuple[str, ...]: ...

    def exists(self, identifier: AssetIdentifier) -> bool: ...

    def locate(self, identifier: AssetIdentifier) -> Path | None: ...

    def read_definition(self, identifier: AssetIdentifier) -> str | None: ...

    def bot_versions(self, bot_name: str) -> tuple[AssetIdentifier, ...]: ...


class FilesystemInventory:
    """Inventory backed by a source-format project directory."""

    __slots__ = ("_project_root", "_source_root")

    def __init__(
        self,
        project_root: str | Path,
        *,
        source_dir: str | Path = DEFAULT_SOURCE_DIR,
    ) -> None:
        self._project_root = Path(project_root).expanduser().resolve()
        source = Path(source_dir)
        self._source_root = source if source.is_absolute() else self._project_root / source

    @property
    def project_root(self) -> Path:
        return self._project_root

    @property
    def source_root(self) -> Path:
        return self._source_root

    def list_names(self, category: AssetCategory) -> tuple[str, ...]:
        if category is AssetCategory.APEX_CLASS:
            return self._names_with_suffix(self._source_root / "classes", _CLASS_SUFFIX)
        if category is AssetCategory.FLOW:
            return self._names_with_suffix(self._source_root / "flows", _FLOW_SUFFIX)
        if category is AssetCategory.BOT:
            return tuple(
                entry.name
                for entry in self._sorted_dirs(self._source_root / "bots")
                if (entry / f"{entry.name}{_BOT_SUFFIX}").is_file()
            )
        if category is AssetCategory.BOT_VERSION:
            names: list[str] = []
            for bot_name in self.list_names(AssetCategory.BOT):
                names.extend(item.name for item in self.bot_versions(bot_name))
            return tuple(names)
        return self._bundle_names(category)

    def exists(self, identifier: AssetIdentifier) -> bool:
        return self.locate(identifier) is not None

    def locate(self, identifier: AssetIdentifier) -> Path | None:
        for candidate in self._candidates(identifier):
            if candidate.is_file():
                return candidate
        return None

    def read_definition(self, identifier: AssetIdentifier) -> str | None:
        path = self.locate(identifier)
        if path is None:
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _LOGGER.debug(
                "inventory_definition_unreadable",
                identifier=identifier.key,
                path=str(path),
                error=str(exc),
            )
            return None

    def bot_versions(self, bot_name: str) -> tuple[AssetIdentifier, ...]:
        bot_dir = self._source_root / "bots" / bot_name
        if not bot_dir.is_dir():
            return ()
        labels = sorted(
            entry.name[: -len(_BOT_VERSION_SUFFIX)]
            for entry in bot_dir.iterdir()
            if entry.is_file() and entry.name.endswith(_BOT_VERSION_SUFFIX)
        )
        return tuple(AssetIdentifier.bot_version(bot_name, label) for label in labels)

    def describe(self, category: AssetCategory) -> tuple[AssetDescriptor, ...]:
        """List assets of ``category`` with label/description read from their definition."""

        descriptors: list[AssetDescriptor] = []
        for name in self.list_names(category):
            identifier = AssetIdentifier(category, name)
            path = self.locate(identifier)
            if path is None:
                continue
            metadata_path = path
            if category is AssetCategory.APEX_CLASS:
                metadata_path = path.with_name(f"{path.name}-meta.xml")
            fields = _summary_fields(metadata_path)
            descriptors.append(
                AssetDescriptor(
                    identifier=identifier,
                    path=path,
                    label=fields.get("label"),
                    description=fields.get("description"),
                    api_version=fields.get("apiVersion"),
                    status=fields.get("status"),
                )
            )
        return tuple(descriptors)

    def resolve_object_id(self, object_id: str) -> str | None:
        """Map a record id seen in remote errors to a local object API name."""

        for entry in self._sorted_dirs(self._source_root / OBJECTS_DIR):
            meta_path = entry / f"{entry.name}{_OBJECT_SUFFIX}"
            try:
                content = meta_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            if object_id in content:
                return entry.name
        return None

    def _candidates(self, identifier: AssetIdentifier) -> tuple[Path, ...]:
        root = self._source_root
        name = identifier.name
        category = identifier.category
        if category is AssetCategory.APEX_CLASS:
            return (root / "classes" / f"{name}{_CLASS_SUFFIX}",)
        if category is AssetCategory.FLOW:
            return (root / "flows" / f"{name}{_FLOW_SUFFIX}",)
        if category is AssetCategory.BOT:
            return (root / "bots" / name / f"{name}{_BOT_SUFFIX}",)
        if category is AssetCategory.BOT_VERSION:
            bot_name = identifier.bot_name or ""
            label = identifier.version_label or ""
            return (root / "bots" / bot_name / f"{label}{_BOT_VERSION_SUFFIX}",)

        directory, extension = _BUNDLE_LAYOUT[category]
        base = root / directory
        return (
            base / name / f"{name}.{extension}-meta.xml",
            base / name / f"{name}.{extension}",
            base / f"{name}.{extension}-meta.xml",
        )

    def _bundle_names(self, category: AssetCategory) -> tuple[str, ...]:
        directory, extension = _BUNDLE_LAYOUT[category]
        base = self._source_root / directory
        if not base.is_dir():
            return ()
        flat_suffix = f".{extension}-meta.xml"
        names: set[str] = set()
        for entry in base.iterdir():
            if entry.is_dir():
                if (entry / f"{entry.name}{flat_suffix}").is_file() or (
                    entry / f"{entry.name}.{extension}"
                ).is_file():
                    names.add(entry.name)
            elif entry.name.endswith(flat_suffix):
                names.add(entry.name[: -len(flat_suffix)])
        return tuple(sorted(names))

    @staticmethod
    def _names_with_suffix(directory: Path, suffix: str) -> tuple[str, ...]:
        if not directory.is_dir():
            return ()
        return tuple(
            sorted(
                entry.name[: -len(suffix)]
                for entry in directory.iterdir()
                if entry.is_file() and entry.name.endswith(suffix)
            )
        )

    @staticmethod
    def _sorted_dirs(directory: Path) -> tuple[Path, ...]:
        if not directory.is_dir():
            return ()
        return tuple(sorted((entry for entry in directory.iterdir() if entry.is_dir())))


def _summary_fields(path: Path) -> dict[str, str]:
    try:
        root = ET.fromstring(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ET.ParseError):
        return {}

    values: dict[str, str] = {}
    for child in root:
        tag = child.tag.rsplit("}", 1)[-1]
        text = (child.text or "").strip()
        if not text:
            continue
        if tag in _LABEL_FIELDS and "label" not in values:
            values["label"] = text
        elif tag in {"description", "apiVersion", "status"}:
            values.setdefault(tag, text)
    return values


__all__ = ["AssetDescriptor", "AssetInventory", "FilesystemInventory"]
