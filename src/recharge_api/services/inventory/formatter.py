"""Canonical form for recharge code strings."""

from __future__ import annotations

import re
from typing import Iterable, List

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")
BLOCK_SIZE = 4


def normalize_code(raw: str | None) -> str:
    """Strip punctuation, regroup into blocks of four and upper-case.

    ``"abcd-1234-efgh"`` becomes ``"ABCD 1234 EFGH"``. An empty return value
    means the input carried no code at all. The function is idempotent.
    """

    if not raw:
        return ""
    compact = _NON_ALPHANUMERIC.sub("", raw)
    blocks = [compact[index : index + BLOCK_SIZE] for index in range(0, len(compact), BLOCK_SIZE)]
    return " ".join(blocks).upper()


def normalize_codes(raw_codes: Iterable[str | None]) -> List[str]:
    """Normalize a batch, dropping entries that carry no code."""

    normalized = (normalize_code(raw) for raw in raw_codes)
    return [code for code in normalized if code]


def parse_code_block(text: str | None) -> List[str]:
    """Split pasted text into one canonical code per non-blank line."""

    if not text:
        return []
    return normalize_codes(line.strip() for line in text.splitlines() if line.strip())


__all__ = ["BLOCK_SIZE", "normalize_code", "normalize_codes", "parse_code_block"]
