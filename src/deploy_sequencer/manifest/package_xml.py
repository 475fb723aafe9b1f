"""
deploy-sequencer — package.xml manifests

File: src/deploy_sequencer/manifest/package_xml.py

Purpose
- Serialize cumulative manifests into the platform's ``package.xml`` format and
  read them back.
- Write one durable, human-inspectable artifact per batch so a manual
  ``sf project deploy validate --manifest <file>`` is always possible.

Functional requirements
- ``<types>`` blocks follow platform layer order; members keep plan order.
- ``<version>`` carries the target API version.
- Artifact names encode batch number, category and mode; writes are atomic.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Mapping
from pathlib import Path

from deploy_sequencer.constants import PACKAGE_XML_NAMESPACE
from deploy_sequencer.domain.models import (
    AssetCategory,
    AssetIdentifier,
    CumulativeManifest,
    DeployMode,
    parse_category,
)
from deploy_sequencer.utils.fs import atomic_write, ensure_directory


class ManifestError(ValueError):
    """Raised when a manifest document cannot be parsed."""


def render_package_xml(manifest: CumulativeManifest) -> str:
    root = ET.Element("Package", {"xmlns": PACKAGE_XML_NAMESPACE})
    for category, names in manifest.groups:
        types = ET.SubElement(root, "types")
        for name in names:
            ET.SubElement(types, "members").text = name
        ET.SubElement(types, "name").text = str(category)
    ET.SubElement(root, "version").text = manifest.api_version
    ET.indent(root, space="    ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def parse_package_xml(text: str) -> tuple[dict[str, tuple[str, ...]], str | None]:
    """Return ``({type_name: members}, version)`` from a ``package.xml`` document.

    Unknown type names are kept verbatim so manifests holding non-plannable
    metadata (custom fields retrieved during remediation, say) still parse.
    """

    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ManifestError(f"malformed package.xml: {exc}") from exc
    if _local(root.tag) != "Package":
        raise ManifestError(f"expected <Package> root element, found <{_local(root.tag)}>")

    groups: dict[str, list[str]] = {}
    version: str | None = None
    for child in root:
        tag = _local(child.tag)
        if tag == "version":
            version = (child.text or "").strip() or None
            continue
        if tag != "types":
            continue
        type_name: str | None = None
        members: list[str] = []
        for node in child:
            node_tag = _local(node.tag)
            value = (node.text or "").strip()
            if node_tag == "name" and value:
                type_name = value
            elif node_tag == "members" and value:
                members.append(value)
        if type_name is None:
            raise ManifestError("<types> block without a <name>")
        groups.setdefault(type_name, []).extend(members)
    return {name: tuple(members) for name, members in groups.items()}, version


def manifest_identifiers(groups: Mapping[str, tuple[str, ...]]) -> tuple[AssetIdentifier, ...]:
    """Plannable identifiers in ``groups``; other metadata types are ignored."""

    identifiers: list[AssetIdentifier] = []
    for type_name, members in groups.items():
        category = parse_category(type_name)
        if category is None:
            continue
        identifiers.extend(AssetIdentifier(category, member) for member in members)
    return tuple(identifiers)


def manifest_filename(batch_number: int, category: AssetCategory, mode: DeployMode) -> str:
    return f"batch-{batch_number:02d}-{category}-{mode}.package.xml"


def write_manifest(
    manifest: CumulativeManifest,
    directory: str | Path,
    *,
    category: AssetCategory,
    mode: DeployMode,
) -> Path:
    target_dir = ensure_directory(directory)
    path = target_dir / manifest_filename(manifest.batch_number, category, mode)
    atomic_write(path, render_package_xml(manifest))
    return path


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


__all__ = [
    "ManifestError",
    "manifest_filename",
    "manifest_identifiers",
    "parse_package_xml",
    "render_package_xml",
    "write_manifest",
]
