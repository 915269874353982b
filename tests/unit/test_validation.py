"""
Unit tests for input validation utilities
"""

import pytest

from momo_pipeline.utils.ussd import format_ussd
from momo_pipeline.utils.validation import (
    ValidationError,
    validate_country_code,
    validate_max_retry,
    validate_record_id,
    validate_sender_id,
)


@pytest.mark.unit
class TestValidateRecordId:
    """Tests for validate_record_id"""

    def test_valid_ids(self):
        """Test valid record IDs"""
        assert validate_record_id("6f1c2b9e-8a51-4d0c-9d59-1b2f7f0b4a11") == "6f1c2b9e-8a51-4d0c-9d59-1b2f7f0b4a11"
        assert validate_record_id("  rec_1.a  ") == "rec_1.a"

    @pytest.mark.parametrize("value", ["", "   ", None, "id with space", "id;drop", "x" * 65])
    def test_invalid_ids(self, value):
        """Test rejected record IDs"""
        with pytest.raises(ValidationError):
            validate_record_id(value)

    def test_custom_field_name(self):
        """Test that the field name appears in the error"""
        with pytest.raises(ValidationError, match="local_id"):
            validate_record_id("", field_name="local_id")


@pytest.mark.unit
class TestValidateCountryCode:
    """Tests for validate_country_code"""

    @pytest.mark.parametrize("value,expected", [("RW", "RW"), (" ke ", "KE"), ("Ug", "UG")])
    def test_normalized(self, value, expected):
        """Test that codes are stripped and upper-cased"""
        assert validate_country_code(value) == expected

    @pytest.mark.parametrize("value", ["", "R", "RWA", "R1", None])
    def test_invalid(self, value):
        """Test rejected country codes"""
        with pytest.raises(ValidationError):
            validate_country_code(value)


@pytest.mark.unit
class TestValidateSenderId:
    """Tests for validate_sender_id"""

    @pytest.mark.parametrize("value", ["M-Money", "+250788123456", "MTN MoMo"])
    def test_valid(self, value):
        """Test accepted senders"""
        assert validate_sender_id(f" {value} ") == value

    @pytest.mark.parametrize("value", ["", "  ", "bad\x00sender", "x" * 65])
    def test_invalid(self, value):
        """Test rejected senders"""
        with pytest.raises(ValidationError):
            validate_sender_id(value)


@pytest.mark.unit
class TestValidateMaxRetry:
    """Tests for validate_max_retry"""

    def test_valid(self):
        assert validate_max_retry(1) == 1
        assert validate_max_retry(100) == 100

    @pytest.mark.parametrize("value", [0, -1, 101, True, "3", 2.5])
    def test_invalid(self, value):
        """Test rejected ceilings"""
        with pytest.raises(ValidationError):
            validate_max_retry(value)

    def test_is_value_error(self):
        """Test that ValidationError can be caught as ValueError"""
        with pytest.raises(ValueError):
            validate_max_retry(0)


@pytest.mark.unit
class TestFormatUssd:
    """Tests for format_ussd"""

    def test_substitution(self):
        """Test placeholder replacement with separators removed"""
        assert format_ussd("*182*1*1*{phone}*{amount}#", phone="0788 123 456", amount="1,500") == (
            "*182*1*1*0788123456*1500#"
        )

    def test_missing_value(self):
        """Test that a missing placeholder value raises ValueError"""
        with pytest.raises(ValueError, match="merchant"):
            format_ussd("*182*8*1*{merchant}*{amount}#", amount="100")

    def test_unknown_braces_kept(self):
        """Test that text other than known placeholders is untouched"""
        assert format_ussd("*100*{other}#") == "*100*{other}#"
