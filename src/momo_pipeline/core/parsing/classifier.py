"""
Message classifier for inbound SMS.

Resolves the provider for a message and extracts transaction fields using
the provider's patterns, falling back to a heuristic parser when neither
pattern matches.
"""

import re

from momo_pipeline.core.models import Direction, ParsedTransaction, ParserKind, ProviderPattern
from momo_pipeline.core.patterns import PatternRegistry
from momo_pipeline.observability.logger import get_logger
from momo_pipeline.observability.metrics import increment_counter, messages_classified_total

from .amounts import parse_amount
from .heuristic import FallbackParser

logger = get_logger(__name__)

EXACT_MATCH_CONFIDENCE = 1.0
UNPARSEABLE_AMOUNT_CONFIDENCE = 0.5
MAX_FALLBACK_CONFIDENCE = 0.99


class MessageClassifier:
    """
    Decides whether an SMS is a financial notification and parses it.

    The classifier holds no mutable state after construction and can be
    shared across threads.
    """

    def __init__(self, registry: PatternRegistry, fallback: FallbackParser | None = None):
        """
        Initialize the classifier.

        Args:
            registry: Provider pattern registry
            fallback: Parser tried when neither provider pattern matches
        """
        self.registry = registry
        self.fallback = fallback

    def classify(self, country_code: str, sender_id: str, body: str) -> ParsedTransaction | None:
        """
        Classify and parse a message.

        Args:
            country_code: ISO 3166 alpha-2 code of the receiving device
            sender_id: SMS sender address
            body: SMS text

        Returns:
            None when the sender is not a known provider for the country.
            Otherwise a ParsedTransaction; a message from a known provider
            that cannot be parsed yields direction UNKNOWN with confidence 0.
        """
        provider = self.registry.detect_provider(country_code, sender_id)
        country = (country_code or "").upper() or "??"

        if provider is None:
            increment_counter(messages_classified_total, country=country, result="not_financial")
            return None

        try:
            parsed = self._parse_with_provider(provider, sender_id, body or "")
        except Exception as e:
            logger.warning(
                "Parsing failed, recording message as unparsed",
                extra={
                    "country_code": country,
                    "provider_code": provider.provider_code,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            parsed = None

        if parsed is None:
            parsed = self._unparsed(provider)
            result = "unparsed"
        else:
            result = parsed.parser.value

        increment_counter(messages_classified_total, country=country, result=result)
        logger.debug(
            "Message classified",
            extra={
                "country_code": country,
                "provider_code": provider.provider_code,
                "direction": parsed.direction.value,
                "confidence": parsed.confidence,
                "parser": parsed.parser.value,
            },
        )
        return parsed

    def _parse_with_provider(
        self, provider: ProviderPattern, sender_id: str, body: str
    ) -> ParsedTransaction | None:
        for direction, pattern in (
            (Direction.RECEIVED, provider.received_pattern),
            (Direction.SENT, provider.sent_pattern),
        ):
            match = pattern.search(body)
            if match:
                return self._from_match(provider, direction, match, body)

        if self.fallback is None:
            return None

        result = self.fallback.parse(sender_id, body, currency_hint=provider.currency)
        if result is None:
            return None

        return result.model_copy(
            update={
                "currency": provider.currency,
                "confidence": min(result.confidence, MAX_FALLBACK_CONFIDENCE),
                "parser": ParserKind.HEURISTIC,
                "provider_code": provider.provider_code,
                "provider_name": provider.provider_name,
            }
        )

    def _from_match(
        self, provider: ProviderPattern, direction: Direction, match: re.Match, body: str
    ) -> ParsedTransaction:
        amount = parse_amount(match.group(provider.amount_group))
        party = match.group(provider.party_group)

        return ParsedTransaction(
            amount=amount if amount is not None else 0,
            currency=provider.currency,
            party=party.strip() if party and party.strip() else None,
            transaction_id=_first_group(provider.transaction_id_pattern, body),
            balance=parse_amount(_first_group(provider.balance_pattern, body)),
            direction=direction,
            confidence=EXACT_MATCH_CONFIDENCE if amount is not None else UNPARSEABLE_AMOUNT_CONFIDENCE,
            parser=ParserKind.PATTERN,
            provider_code=provider.provider_code,
            provider_name=provider.provider_name,
        )

    @staticmethod
    def _unparsed(provider: ProviderPattern) -> ParsedTransaction:
        return ParsedTransaction(
            amount=0,
            currency=provider.currency,
            direction=Direction.UNKNOWN,
            confidence=0.0,
            parser=ParserKind.HEURISTIC,
            provider_code=provider.provider_code,
            provider_name=provider.provider_name,
        )


def _first_group(pattern: re.Pattern | None, body: str) -> str | None:
    if pattern is None:
        return None
    match = pattern.search(body)
    if not match or not match.groups():
        return None
    value = match.group(1)
    return value.strip() if value else None
