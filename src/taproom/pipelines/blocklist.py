"""Menu items that are never looked up: flights, mixed drinks, soft drinks."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

BLOCKLISTED_NAMES = frozenset(
    {
        "Black Velvet",
        "Build Your Flight",
        "Cheeky Monkey",
        "Chocolate Banana",
        "Dealer's Choice Flight",
        "Hop Head Flight",
        "Hummingbird H20",
        "Irish Car Bomb",
        "Michelada",
        "Texas Flight",
    }
)

BLOCKLISTED_PATTERNS = (
    re.compile(r"\bflight\b", re.IGNORECASE),
    re.compile(r"\broot beer\b", re.IGNORECASE),
    re.compile(r"\bbeer and cheese\b", re.IGNORECASE),
)

BeerT = TypeVar("BeerT", bound=Mapping[str, Any])


def is_blocklisted(brew_name: str | None) -> bool:
    """True if ``brew_name`` is an exact blocklisted name or matches a pattern.

    >>> is_blocklisted("Sour Flight")
    True
    >>> is_blocklisted("Hazy Daze IPA")
    False
    """
    if not brew_name:
        return False
    if brew_name in BLOCKLISTED_NAMES:
        return True
    return any(pattern.search(brew_name) for pattern in BLOCKLISTED_PATTERNS)


def split_blocklisted(beers: Iterable[BeerT]) -> tuple[list[BeerT], list[BeerT]]:
    """Split beer rows on ``brew_name`` into ``(eligible, skipped)``."""
    eligible: list[BeerT] = []
    skipped: list[BeerT] = []
    for beer in beers:
        (skipped if is_blocklisted(beer.get("brew_name")) else eligible).append(beer)
    return eligible, skipped
