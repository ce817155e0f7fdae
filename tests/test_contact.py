import pytest

from edunotify.services.contact import is_valid_email, normalize_phone


class TestNormalizePhone:
    """Test Nigerian mobile number normalization."""

    def test_local_number(self):
        assert normalize_phone("08012345678") == "2348012345678"

    def test_local_number_e164(self):
        assert normalize_phone("08012345678", e164=True) == "+2348012345678"

    def test_international_number(self):
        assert normalize_phone("+2348012345678") == "2348012345678"

    def test_formatting_is_stripped(self):
        assert normalize_phone("+234 (803) 123-4567") == "2348031234567"

    def test_missing_country_code_is_prepended(self):
        assert normalize_phone("9012345678") == "2349012345678"

    @pytest.mark.parametrize("raw", ["123", "", None, "abc", "08612345678", "2348012345"])
    def test_invalid(self, raw):
        assert normalize_phone(raw) is None


class TestIsValidEmail:
    """Test the email syntax rule."""

    @pytest.mark.parametrize("value", ["ada@example.com", "a.b@school.edu.ng"])
    def test_valid(self, value):
        assert is_valid_email(value)

    @pytest.mark.parametrize("value", [None, "", "no-at-sign", "a@b", "a b@example.com", "@example.com"])
    def test_invalid(self, value):
        assert not is_valid_email(value)
