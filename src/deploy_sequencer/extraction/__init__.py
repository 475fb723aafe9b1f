"""
deploy-sequencer — reference extraction

File: src/deploy_sequencer/extraction/__init__.py

Purpose
- Recover typed references from one asset definition.

What should be included in this file
- The composite extractor plus the two independent strategies it combines.

Functional requirements
- Unparsable content yields no references, never an exception.
"""

from deploy_sequencer.extraction.base import (
    ReferenceStrategy,
    category_for_discriminator,
    is_plain_identifier,
)
from deploy_sequencer.extraction.extractor import ReferenceExtractor
from deploy_sequencer.extraction.patterns import (
    DEFAULT_PATTERNS,
    PatternReferenceStrategy,
    ReferencePattern,
)
from deploy_sequencer.extraction.structured import StructuredReferenceStrategy

__all__ = [
    "DEFAULT_PATTERNS",
    "PatternReferenceStrategy",
    "ReferenceExtractor",
    "ReferencePattern",
    "ReferenceStrategy",
    "StructuredReferenceStrategy",
    "category_for_discriminator",
    "is_plain_identifier",
]
