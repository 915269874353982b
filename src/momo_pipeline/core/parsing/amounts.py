"""
Amount parsing for SMS notification text.
"""

import re
from decimal import Decimal, InvalidOperation

_SEPARATORS = re.compile(r"[,\s']")


def parse_amount(text: str | None) -> Decimal | None:
    """
    Parse an amount captured from an SMS.

    Thousands separators (commas, spaces, apostrophes) are stripped before
    parsing as a decimal.

    Args:
        text: Captured amount text, e.g. "5,000" or "1 250.50"

    Returns:
        The amount as a Decimal, or None if the text is not a finite,
        non-negative number

    Examples:
        >>> parse_amount("5,000")
        Decimal('5000')
        >>> parse_amount("abc") is None
        True
    """
    if text is None:
        return None

    cleaned = _SEPARATORS.sub("", str(text)).rstrip(".")
    if not cleaned:
        return None

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not value.is_finite() or value < 0:
        return None
    return value
