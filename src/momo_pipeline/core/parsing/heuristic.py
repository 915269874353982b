"""
Fallback parsers for messages no provider pattern recognises.
"""

import re
from abc import ABC, abstractmethod

from momo_pipeline.core.models import Direction, ParsedTransaction, ParserKind

from .amounts import parse_amount

UNKNOWN_CURRENCY = "XXX"


class FallbackParser(ABC):
    """
    Parser consulted when neither provider pattern matches.

    Implementations return a ParsedTransaction with confidence below 1.0, or
    None when the text carries no recognisable transaction.
    """

    @abstractmethod
    def parse(self, sender: str, body: str, currency_hint: str | None = None) -> ParsedTransaction | None:
        """
        Parse a message.

        Args:
            sender: SMS sender address
            body: SMS text
            currency_hint: Currency of the resolved provider, if any

        Returns:
            ParsedTransaction or None
        """
        pass


class KeywordHeuristicParser(FallbackParser):
    """
    Keyword-based parser for generic mobile-money notifications.

    Direction comes from the first keyword group found as whole words in the
    body, checked in the order received, sent, cash out, airtime, deposit.
    """

    CONFIDENCE = 0.5
    CONFIDENCE_WITHOUT_AMOUNT = 0.3

    DIRECTION_KEYWORDS: list[tuple[Direction, tuple[str, ...]]] = [
        (Direction.RECEIVED, ("received", "credited", "incoming", "you have received")),
        (Direction.SENT, ("sent", "transferred", "paid", "payment to", "debited")),
        (Direction.CASH_OUT, ("cash out", "withdrawn", "withdrawal", "atm")),
        (Direction.AIRTIME, ("airtime", "recharge", "top-up", "topup")),
        (Direction.DEPOSIT, ("deposit", "cash in")),
    ]

    CURRENCY_FIRST = re.compile(r"\b([A-Z]{3})\s*([\d,]+(?:\.\d+)?)")
    AMOUNT_FIRST = re.compile(r"([\d,]+(?:\.\d+)?)\s*([A-Z]{3})\b")

    BALANCE_PATTERNS = [
        re.compile(r"balance[:\s]+[A-Z]{3}\s*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
        re.compile(r"\bbal[:\s]+[A-Z]{3}\s*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
        re.compile(r"new balance[:\s]*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
        re.compile(r"available[:\s]*([\d,]+(?:\.\d+)?)", re.IGNORECASE),
    ]

    REFERENCE_PATTERNS = [
        re.compile(r"\b(?:ref|txn|transaction(?:\s+id)?)[:\s#]*((?=[A-Z]*\d)[A-Z0-9]{6,})", re.IGNORECASE),
        re.compile(r"\b(?:confirmation|receipt)[:\s#]*((?=[A-Z]*\d)[A-Z0-9]{6,})", re.IGNORECASE),
        re.compile(r"\b([A-Z]{2,4}\d{8,12})\b"),
    ]

    def __init__(self):
        self._direction_patterns = [
            (direction, re.compile(r"\b(?:" + "|".join(map(re.escape, keywords)) + r")\b", re.IGNORECASE))
            for direction, keywords in self.DIRECTION_KEYWORDS
        ]

    def parse(self, sender: str, body: str, currency_hint: str | None = None) -> ParsedTransaction | None:
        if not body or not body.strip():
            return None

        direction = self._detect_direction(body)
        amount, currency = self._extract_amount(body)

        if direction == Direction.UNKNOWN and amount is None:
            return None

        return ParsedTransaction(
            amount=amount if amount is not None else 0,
            currency=currency_hint or currency or UNKNOWN_CURRENCY,
            party=None,
            transaction_id=self._first_group(self.REFERENCE_PATTERNS, body),
            balance=parse_amount(self._first_group(self.BALANCE_PATTERNS, body)),
            direction=direction,
            confidence=self.CONFIDENCE if amount is not None else self.CONFIDENCE_WITHOUT_AMOUNT,
            parser=ParserKind.HEURISTIC,
        )

    def _detect_direction(self, body: str) -> Direction:
        for direction, pattern in self._direction_patterns:
            if pattern.search(body):
                return direction
        return Direction.UNKNOWN

    def _extract_amount(self, body: str):
        match = self.CURRENCY_FIRST.search(body)
        if match:
            return parse_amount(match.group(2)), match.group(1)

        match = self.AMOUNT_FIRST.search(body)
        if match:
            return parse_amount(match.group(1)), match.group(2)

        return None, None

    @staticmethod
    def _first_group(patterns: list[re.Pattern], body: str) -> str | None:
        for pattern in patterns:
            match = pattern.search(body)
            if match:
                return match.group(1)
        return None
