"""Shared contract and helpers for reference extraction strategies."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

from deploy_sequencer.domain.models import AssetCategory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from deploy_sequencer.domain.models import Reference

# Invocation/action type discriminators that resolve to a deployable category.
DISCRIMINATOR_CATEGORIES: Final[dict[str, AssetCategory]] = {
    "apex": AssetCategory.APEX_CLASS,
    "flow": AssetCategory.FLOW,
}

_PLAIN_IDENTIFIER: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@runtime_checkable
class ReferenceStrategy(Protocol):
    """One way of recovering references from an asset definition.

    Implementations must not raise on malformed content; they return an empty
    sequence instead.
    """

    name: str

    def extract(
        self,
        category: AssetCategory,
        name: str,
        content: str,
    ) -> Sequence[Reference]: ...


def category_for_discriminator(raw: str | None) -> AssetCategory | None:
    """Map an ``invocationTargetType``/``actionType`` value to a category."""

    if raw is None:
        return None
    return DISCRIMINATOR_CATEGORIES.get(raw.strip().lower())


def is_plain_identifier(value: str) -> bool:
    """True for bare API names; false for templated or namespaced values."""

    return bool(_PLAIN_IDENTIFIER.fullmatch(value)) and "__" not in value


__all__ = [
    "DISCRIMINATOR_CATEGORIES",
    "ReferenceStrategy",
    "category_for_discriminator",
    "is_plain_identifier",
]
