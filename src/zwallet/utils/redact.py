"""Redaction helpers for safe logging and display of addresses and keys."""

from __future__ import annotations


def redact_middle(text: str, keep_start: int = 6, keep_end: int = 6) -> str:
    """Keep the first/last characters of *text* and replace the middle with '…'.

    Strings too short to hide anything are returned unchanged.
    """
    if len(text) <= keep_start + keep_end + 1:
        return text
    return f"{text[:keep_start]}…{text[len(text) - keep_end :]}"
