"""Lenient parsing of numbers scraped from marketplace pages."""

from __future__ import annotations

import math
import re

_NON_DIGITS = re.compile(r"[^\d]")
_NUMBER = re.compile(r"-?[\d.,]+")


def parse_count(value) -> int:
    """Parse a count like "1.234 vendidos" or "2k+" into an int.

    Non-digit characters are stripped; a trailing "k"/"mil" multiplies by 1000.
    Returns 0 for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, int(value))

    text = str(value).strip().lower()
    multiplier = 1000 if re.search(r"\d\s*(k|mil)\b", text) else 1
    if multiplier > 1:
        number = parse_price(re.sub(r"(k|mil).*$", "", text))
        return max(0, int(number * multiplier))

    digits = _NON_DIGITS.sub("", text)
    return int(digits) if digits else 0


def parse_price(value) -> float:
    """Parse a price in either "1,234.56" or "1.234,56" notation.

    The right-most separator is taken as the decimal mark when it is followed
    by one or two digits; otherwise separators are thousands marks.

    Example:
        >>> parse_price("R$ 1.234,56")
        1234.56
        >>> parse_price("US $1,234.56")
        1234.56
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0

    match = _NUMBER.search(str(value).replace(" ", ""))
    if not match:
        return 0.0
    token = match.group(0)

    last_sep = max(token.rfind(","), token.rfind("."))
    if last_sep == -1:
        return float(token)

    decimals = token[last_sep + 1:]
    if 1 <= len(decimals) <= 2:
        integer = re.sub(r"[.,]", "", token[:last_sep])
        return float(f"{integer or '0'}.{decimals}")
    return float(re.sub(r"[.,]", "", token) or 0)


def parse_rating(value) -> float:
    """Parse a rating like "4,8" or "4.8 de 5" into a float."""
    return parse_price(value)
