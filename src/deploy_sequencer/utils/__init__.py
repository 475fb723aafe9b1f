"""Utility exports for filesystem and concurrency helpers."""

from deploy_sequencer.utils.concurrency import BoundedSemaphore, CancellationToken, WorkerPool
from deploy_sequencer.utils.fs import atomic_write, display_path, ensure_directory, is_within

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
    "atomic_write",
    "display_path",
    "ensure_directory",
    "is_within",
]
