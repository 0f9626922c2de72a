"""Case labels such as ``W3`` or ``AT12``: a kind code followed by its per-community number."""

from __future__ import annotations

import re

_LABEL = re.compile(r"([A-Za-z]+)(\d+)")


def format_case_label(case_code: str, action_case_number: int) -> str:
    return f"{case_code.upper()}{action_case_number}"


def parse_case_label(raw: str) -> tuple[str, int] | None:
    """Split a label into its code and number.

    >>> parse_case_label(" w3 ")
    ('W', 3)

    Returns None when either part is missing or the number is zero.
    """
    match = _LABEL.fullmatch(raw.strip())
    if match is None:
        return None
    number = int(match.group(2))
    if number == 0:
        return None
    return match.group(1).upper(), number
