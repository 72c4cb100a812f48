"""Lenient parser for mask index expressions such as ``"1, 4-6、9~7"``.

Parsing never fails: tokens that do not start with an integer, and ranges
that are not exactly ``A-B``, are skipped.  Like a browser's ``parseInt``,
a token's leading digits are used and any trailing text is ignored
(``"5abc"`` gives ``5``).  Every dash starts a range, so ``"-3"`` is a
range with an empty start and is skipped rather than read as negative.
:func:`parse_mask_indices_verbose` reports what was skipped so callers can
tell a malformed expression from an empty one.
"""
from __future__ import annotations

import logging
import re
from typing import List, Set, Tuple

LOGGER = logging.getLogger(__name__)

# ASCII comma, full-width comma, enumeration comma, whitespace
_SEPARATORS = re.compile(r"[,，、\s]+")
_DASH_VARIANTS = re.compile(r"[~—–]")
_LEADING_INTEGER = re.compile(r"\s*\+?(\d+)")


def _parse_int(token: str) -> int | None:
    match = _LEADING_INTEGER.match(token)
    if match is None:
        return None
    return int(match.group(1))


def parse_mask_indices_verbose(text: str) -> Tuple[Set[int], List[str]]:
    """Return ``(targets, skipped_tokens)`` for *text*."""
    targets: Set[int] = set()
    skipped: List[str] = []
    if not text or not text.strip():
        return targets, skipped

    for part in _SEPARATORS.split(text):
        part = part.strip()
        if not part:
            continue
        normalized = _DASH_VARIANTS.sub("-", part)
        if "-" in normalized:
            bounds = normalized.split("-")
            start = _parse_int(bounds[0]) if len(bounds) == 2 else None
            end = _parse_int(bounds[1]) if len(bounds) == 2 else None
            if start is None or end is None:
                skipped.append(part)
                continue
            targets.update(range(min(start, end), max(start, end) + 1))
        else:
            value = _parse_int(normalized)
            if value is None:
                skipped.append(part)
                continue
            targets.add(value)

    if skipped:
        LOGGER.debug("Skipped malformed mask tokens: %s", skipped)
    return targets, skipped


def parse_mask_indices(text: str) -> Set[int]:
    """Return every index covered by *text*; range endpoints are inclusive."""
    targets, _ = parse_mask_indices_verbose(text)
    return targets


__all__ = ["parse_mask_indices", "parse_mask_indices_verbose"]
