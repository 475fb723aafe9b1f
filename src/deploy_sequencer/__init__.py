"""
deploy-sequencer — package root

File: src/deploy_sequencer/__init__.py

Purpose
- Dependency resolution and ordered batch planning for metadata deployments,
  plus batch-by-batch remote validation with bounded gap remediation.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
