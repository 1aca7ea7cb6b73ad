"""Tests for phone normalization, variants and PII redaction."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ridebooking.phone import (
    find_phone,
    is_valid_phone,
    normalize_phone,
    phone_variants,
    redact_pii,
)


class TestNormalizePhone:
    def test_local_mobile_number(self):
        assert normalize_phone("03001234567") == "+923001234567"

    def test_separators_dropped(self):
        assert normalize_phone("0300-123 4567") == "+923001234567"

    def test_whatsapp_prefix(self):
        assert normalize_phone("whatsapp:+923001234567") == "+923001234567"

    def test_bare_international_digits(self):
        assert normalize_phone("14155550100") == "+14155550100"

    def test_double_zero_prefix(self):
        assert normalize_phone("00923001234567") == "+923001234567"

    def test_empty(self):
        assert normalize_phone("") == ""

    def test_validity(self):
        assert is_valid_phone("+923001234567")
        assert not is_valid_phone("923001234567")
        assert not is_valid_phone("+0123")

    def test_short_digit_strings_are_not_numbers(self):
        for raw in ("12", "99999", "+12"):
            assert not is_valid_phone(normalize_phone(raw))

    def test_wrong_length_local_number(self):
        assert not is_valid_phone(normalize_phone("0300123"))


class TestPhoneVariants:
    def test_country_prefixed_number(self):
        assert phone_variants("+923001234567") == [
            "+923001234567",
            "03001234567",
            "923001234567",
        ]

    def test_other_country(self):
        assert phone_variants("+14155550100") == ["+14155550100", "14155550100"]

    def test_empty(self):
        assert phone_variants("") == []


class TestFindPhone:
    def test_in_sentence(self):
        assert find_phone("my driver is 0300 1234567 thanks") == "+923001234567"

    def test_no_phone(self):
        assert find_phone("tomorrow at 3pm") is None

    def test_international_number(self):
        assert find_phone("use +1 415 555 0100 please") == "+14155550100"

    def test_short_number_ignored(self):
        assert find_phone("driver 12") is None


class TestRedactPii:
    def test_masks_middle(self):
        assert redact_pii("+923001234567") == "+92***67"

    def test_short_values(self):
        assert redact_pii("123") == "***"
        assert redact_pii("") == "***"
