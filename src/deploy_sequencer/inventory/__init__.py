"""Local workspace inventory: which assets exist and where their definitions live."""

from deploy_sequencer.inventory.workspace import (
    AssetDescriptor,
    AssetInventory,
    FilesystemInventory,
)

__all__ = ["AssetDescriptor", "AssetInventory", "FilesystemInventory"]
