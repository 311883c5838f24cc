"""Tests for value normalization and price parsing."""

import pytest

from price_monitor.validation.normalizers import (
    build_search_query,
    extract_site_name,
    find_price_in_text,
    normalize_brand,
    normalize_color,
    normalize_currency,
    normalize_gender,
    normalize_size,
    parse_amount,
    parse_price,
)


class TestNormalizeBrand:
    def test_canonical_name(self):
        assert normalize_brand("nike") == "Nike"
        assert normalize_brand("  ADIDAS ") == "Adidas"

    def test_alias(self):
        assert normalize_brand("tnf") == "The North Face"
        assert normalize_brand("nb") == "New Balance"

    def test_unknown_brand_title_cased(self):
        assert normalize_brand("salomon") == "Salomon"

    def test_empty(self):
        assert normalize_brand(None) is None
        assert normalize_brand("") is None


class TestNormalizeColor:
    @pytest.mark.parametrize(
        "raw,expected",
        [("negro", "Black"), ("blanc", "White"), ("gray", "Grey"), ("Schwarz", "Black")],
    )
    def test_multilingual(self, raw, expected):
        assert normalize_color(raw) == expected

    def test_unknown_color_title_cased(self):
        assert normalize_color("TEAL") == "Teal"


class TestNormalizeCurrency:
    def test_symbols(self):
        assert normalize_currency("€") == "EUR"
        assert normalize_currency("$") == "USD"
        assert normalize_currency("£") == "GBP"

    def test_names(self):
        assert normalize_currency("euros") == "EUR"
        assert normalize_currency("Pounds") == "GBP"

    def test_unknown_code_upper_cased(self):
        assert normalize_currency("chf") == "CHF"


def test_normalize_size_and_gender():
    assert normalize_size("medium") == "M"
    assert normalize_size("x-large") == "XL"
    assert normalize_size("42") == "42"
    assert normalize_gender("Mujer") == "women"
    assert normalize_gender("herren") == "men"
    assert normalize_gender("other") == "other"


class TestParsePrice:
    def test_euro_suffix_with_comma(self):
        price = parse_price("89,95 €")
        assert price.amount == 89.95
        assert price.currency == "EUR"

    def test_euro_prefix(self):
        assert parse_price("€ 120").amount == 120.0

    def test_dollar_and_pound(self):
        assert parse_price("$45.50").currency == "USD"
        assert parse_price("£30").currency == "GBP"

    def test_iso_code(self):
        price = parse_price("Price: 75.00 EUR")
        assert price.amount == 75.0
        assert price.currency == "EUR"

    def test_bare_number_has_no_currency(self):
        price = parse_price("99")
        assert price.amount == 99.0
        assert price.currency is None

    def test_no_digits(self):
        price = parse_price("Sold out")
        assert price.amount is None
        assert price.currency is None

    def test_empty(self):
        assert parse_price(None).amount is None
        assert parse_price("").amount is None

    def test_whitespace_collapsed(self):
        assert parse_price("  59,99\n  €  ").amount == 59.99

    @pytest.mark.parametrize(
        "raw,amount,currency",
        [
            ("$1,299.99", 1299.99, "USD"),
            ("1.299,99 €", 1299.99, "EUR"),
            ("€1,299.00", 1299.0, "EUR"),
            ("EUR 2.499,00", 2499.0, "EUR"),
            ("£12,500", 12500.0, "GBP"),
            ("1234.5 USD", 1234.5, "USD"),
        ],
    )
    def test_thousands_separators(self, raw, amount, currency):
        price = parse_price(raw)
        assert price.amount == amount
        assert price.currency == currency


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw,expected",
        [("1,299.99", 1299.99), ("1.299,99", 1299.99), ("1.299", 1299.0), ("12,5", 12.5), ("1.234.567,89", 1234567.89), ("42", 42.0)],
    )
    def test_last_separator_with_one_or_two_digits_is_decimal(self, raw, expected):
        assert parse_amount(raw) == expected


def test_find_price_in_text_ignores_unmarked_numbers():
    text = "Size 42 available. Now only 79,90 € with free shipping."
    price = find_price_in_text(text)
    assert price.amount == 79.90
    assert price.currency == "EUR"

    assert find_price_in_text("Rated 4.5 by 120 customers").amount is None


class TestExtractSiteName:
    def test_url_resolves_to_catalog_key(self):
        assert extract_site_name("https://www.zalando.es/nike-air-force-1") == "zalando"

    def test_unknown_url_returns_hostname(self):
        assert extract_site_name("https://www.shoes.example.org/item") == "shoes.example.org"

    def test_display_name(self):
        assert extract_site_name("Farfetch") == "farfetch"
        assert extract_site_name("H&M") == "hm"

    def test_unknown_name_lower_cased(self):
        assert extract_site_name("MyShop") == "myshop"


def test_build_search_query_skips_missing_parts():
    assert build_search_query("Nike", "Air Force 1", None, "White", None) == "Nike Air Force 1 White"
    assert build_search_query(None, None, "sneakers", None, "women") == "sneakers women"
