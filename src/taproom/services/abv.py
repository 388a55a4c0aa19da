"""ABV extraction from free-text beer descriptions."""

from __future__ import annotations

import re

MAX_DESCRIPTION_ABV = 20.0

_TAG_RE = re.compile(r"<[^>]*>")
_PERCENT_RE = re.compile(r"\b(\d+(?:\.\d+)?)\s*%", re.ASCII)
_ABV_RE = re.compile(r"(?:ABV[:\s]*\b(\d+(?:\.\d+)?)|\b(\d+(?:\.\d+)?)\s*ABV)", re.ASCII | re.IGNORECASE)


def _plausible(value: str | None) -> float | None:
    if not value:
        return None
    abv = float(value)
    if 0 <= abv <= MAX_DESCRIPTION_ABV:
        return abv
    return None


def extract_abv(description: str | None) -> float | None:
    """Find an ABV in a description.

    Tries a percentage first ("5.2%"), then a number next to "ABV" ("ABV: 5.2",
    "5.2 ABV"). Values above 20 are rejected as unlikely to be an ABV
    ("100% satisfaction"). HTML tags are ignored.

    >>> extract_abv("<p>A crisp lager, 4.8% ABV</p>")
    4.8
    >>> extract_abv("ABV: 7")
    7.0
    >>> extract_abv("100% Citra hops") is None
    True
    """
    if not description:
        return None
    text = _TAG_RE.sub("", description)

    match = _PERCENT_RE.search(text)
    if match:
        abv = _plausible(match.group(1))
        if abv is not None:
            return abv

    match = _ABV_RE.search(text)
    if match:
        return _plausible(match.group(1) or match.group(2))
    return None
