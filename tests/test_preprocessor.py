"""Tests for input normalization helpers."""

import pytest

from core.preprocessor import (
    CardPreprocessor,
    PhonePreprocessor,
    PreprocessorRegistry,
    ValuePreprocessor,
    card_like_pattern,
    mask_card,
    registry,
)


class TestPhonePreprocessor:
    """Phone canonicalization."""

    @pytest.mark.parametrize("raw", [
        "555.123.4567",
        "(555) 123-4567",
        "5551234567",
        "555 123 4567",
        "1-555-123-4567",
        "+1 (555) 123-4567",
    ])
    def test_punctuation_variants_share_canonical_form(self, raw):
        assert PhonePreprocessor().process(raw) == "555-123-4567"

    def test_trailing_digits_become_extension(self):
        phone = PhonePreprocessor().parse("555-123-4567 89")
        assert phone.extension == "89"
        assert phone.canonical == "555-123-4567 x89"
        assert phone.digits == "5551234567"

    @pytest.mark.parametrize("raw", ["12345", "", None, "555-123-456x", "john smith"])
    def test_non_phone_input(self, raw):
        assert PhonePreprocessor().parse(raw) is None
        assert PhonePreprocessor().process(raw) == ""


class TestCardPreprocessor:
    """Card folding and masking."""

    @pytest.mark.parametrize("raw,expected", [
        ("4111-11xx-xxxx-1111", "411111xxxxxx1111"),
        ("4111 11** **** 1111", "411111xxxxxx1111"),
        ("4111-11XX-XX..-__11", "411111xxxxxxxx11"),
        ("4111 1111 1111 1111", "4111111111111111"),
        ("3782-822463-10005", "378282246310005"),
    ])
    def test_folding(self, raw, expected):
        assert CardPreprocessor().process(raw) == expected

    @pytest.mark.parametrize("raw", ["4111", "4111-1111-1111-1111-1", "john smith", None])
    def test_not_card_shaped(self, raw):
        assert CardPreprocessor().process(raw) == ""

    def test_mask_first6last4(self):
        assert mask_card("4111111111111111") == "411111xxxxxx1111"
        assert mask_card("411111xxxxxx1111") == "411111xxxxxx1111"

    def test_mask_other_method(self):
        assert mask_card("4111111111111111", "first4last4") == "4111xxxxxxxx1111"

    def test_mask_short_value_unchanged(self):
        assert mask_card("12345678", "first6last4") == "12345678"

    def test_mask_unknown_method(self):
        with pytest.raises(ValueError):
            mask_card("4111111111111111", "last4")

    def test_like_pattern(self):
        assert card_like_pattern("411111xxxxxx1111") == "411111______1111"


class TestValuePreprocessor:
    def test_trims_and_lowercases(self):
        assert ValuePreprocessor().process("  John Smith ") == "john smith"

    @pytest.mark.parametrize("raw", ["", "   ", "a", " b ", None])
    def test_needs_two_characters(self, raw):
        assert ValuePreprocessor().process(raw) == ""

    @pytest.mark.parametrize("raw", ["john\nsmith", "acme\r\ncorp"])
    def test_value_does_not_span_lines(self, raw):
        assert ValuePreprocessor().process(raw) == ""

    def test_trailing_newline_is_whitespace(self):
        assert ValuePreprocessor().process("Acme Corp\n") == "acme corp"


class TestRegistry:
    def test_defaults(self):
        assert isinstance(registry.create('phone'), PhonePreprocessor)
        assert isinstance(registry.create('card'), CardPreprocessor)

    @pytest.mark.parametrize("name", ['postal_code', 'alphanumeric'])
    def test_unknown(self, name):
        with pytest.raises(ValueError):
            PreprocessorRegistry().create(name)

    def test_register(self):
        local = PreprocessorRegistry()
        local.register('trimmed', ValuePreprocessor)
        assert local.create('trimmed').process(" Ab ") == "ab"
