"""Manifest rendering, parsing and per-batch artifact writing."""

from deploy_sequencer.manifest.package_xml import (
    ManifestError,
    manifest_filename,
    manifest_identifiers,
    parse_package_xml,
    render_package_xml,
    write_manifest,
)

__all__ = [
    "ManifestError",
    "manifest_filename",
    "manifest_identifiers",
    "parse_package_xml",
    "render_package_xml",
    "write_manifest",
]
