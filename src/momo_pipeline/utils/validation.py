"""
Input validation utilities for the capture pipeline.

Validates identifiers and codes that arrive from outside the process
(CLI arguments, ingested event files) before they reach the store.
"""

import re


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


def validate_record_id(record_id: str, field_name: str = "record_id") -> str:
    """
    Validate a transaction record ID.

    Record IDs must be non-empty strings containing only alphanumeric
    characters, hyphens, underscores, and dots.

    Args:
        record_id: The record ID to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated record ID (stripped of whitespace)

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> validate_record_id("6f1c2b9e-8a51-4d0c-9d59-1b2f7f0b4a11")
        '6f1c2b9e-8a51-4d0c-9d59-1b2f7f0b4a11'
        >>> validate_record_id("invalid id!")  # doctest: +SKIP
        ValidationError: record_id contains invalid characters
    """
    if not record_id or not isinstance(record_id, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    record_id = record_id.strip()

    if not record_id:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if not re.match(r'^[a-zA-Z0-9_\-\.]+$', record_id):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed."
        )

    if len(record_id) > 64:
        raise ValidationError(f"{field_name} exceeds maximum length of 64 characters")

    return record_id


def validate_country_code(country_code: str, field_name: str = "country_code") -> str:
    """
    Validate and normalize an ISO 3166 alpha-2 country code.

    Examples:
        >>> validate_country_code(" rw ")
        'RW'
        >>> validate_country_code("RWA")  # doctest: +SKIP
        ValidationError: country_code must be a two-letter ISO 3166 code
    """
    if not country_code or not isinstance(country_code, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    country_code = country_code.strip().upper()

    if not re.match(r'^[A-Z]{2}$', country_code):
        raise ValidationError(f"{field_name} must be a two-letter ISO 3166 code, got {country_code!r}")

    return country_code


def validate_sender_id(sender_id: str, field_name: str = "sender") -> str:
    """
    Validate an SMS sender address.

    Senders are phone numbers or short alphanumeric ids; control characters
    are rejected.

    Args:
        sender_id: The sender to validate
        field_name: Name of the field (for error messages)

    Returns:
        The validated sender (stripped of whitespace)

    Raises:
        ValidationError: If validation fails
    """
    if not sender_id or not isinstance(sender_id, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    sender_id = sender_id.strip()

    if not sender_id:
        raise ValidationError(f"{field_name} cannot be empty or whitespace-only")

    if any(ord(ch) < 32 for ch in sender_id):
        raise ValidationError(f"{field_name} contains control characters")

    if len(sender_id) > 64:
        raise ValidationError(f"{field_name} exceeds maximum length of 64 characters")

    return sender_id


def validate_max_retry(max_retry: int, field_name: str = "max_retry") -> int:
    """
    Validate a retry ceiling.

    Examples:
        >>> validate_max_retry(3)
        3
        >>> validate_max_retry(0)  # doctest: +SKIP
        ValidationError: max_retry must be a positive integer
    """
    if not isinstance(max_retry, int) or isinstance(max_retry, bool):
        raise ValidationError(f"{field_name} must be an integer, got {type(max_retry).__name__}")

    if max_retry <= 0:
        raise ValidationError(f"{field_name} must be a positive integer, got {max_retry}")

    if max_retry > 100:
        raise ValidationError(f"{field_name} exceeds maximum of 100")

    return max_retry
