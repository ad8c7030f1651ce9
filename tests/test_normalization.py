"""Unit tests for field normalization."""

import pytest

from crmdedupe.deduplication.normalization import normalize_email, normalize_name, normalize_phone


class TestNormalizeEmail:
    """Test email canonicalization."""

    def test_lowercases_and_trims(self):
        assert normalize_email("  A@X.com ") == "a@x.com"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_values(self, value):
        assert normalize_email(value) == ""


class TestNormalizePhone:
    """Test phone canonicalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("(555) 123-4567", "5551234567"),
            ("+44 20 7946 0958", "442079460958"),
            ("555.123.4567 ext. 9", "55512345679"),
            ("no digits", ""),
            (None, ""),
        ],
    )
    def test_strips_non_digits(self, raw, expected):
        assert normalize_phone(raw) == expected


class TestNormalizeName:
    """Test full name canonicalization."""

    def test_joins_first_and_last(self):
        assert normalize_name("John", "Smith") == "john smith"

    def test_collapses_whitespace(self):
        assert normalize_name("  Mary   Ann ", "\tLee  ") == "mary ann lee"

    def test_missing_parts(self):
        assert normalize_name(None, "Smith") == "smith"
        assert normalize_name("John", None) == "john"
        assert normalize_name(None, None) == ""
