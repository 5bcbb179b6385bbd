# ==============================================
# Tests for Normalization Module
# ==============================================
#
# class TestNaming           → identifiers, camel/snake, list & link names
# class TestTypeDetector     → value profiles (numeric, leading zeros, dates)
# class TestValueNormalizer  → values assigned to beans
# ==============================================

from datetime import date, datetime
from decimal import Decimal

import pytest

from fluidbean.errors import ValidationError
from fluidbean.normalization import (
    ListProperty,
    TypeDetector,
    ValueKind,
    ValueNormalizer,
    camel_to_snake,
    check_identifier,
    link_columns,
    link_type_name,
    own_list_name,
    parse_list_property,
    shared_list_name,
    snake_to_camel,
)


class TestNaming:
    def test_check_identifier_accepts_word_characters(self):
        assert check_identifier("book_2") == "book_2"

    @pytest.mark.parametrize("name", ["", "book page", "book-page", "book;drop", None, 12])
    def test_check_identifier_rejects(self, name):
        with pytest.raises(ValidationError):
            check_identifier(name)

    def test_camel_case_to_snake_case(self):
        assert camel_to_snake("bookPage") == "book_page"
        assert camel_to_snake("BookPage") == "book_page"
        assert camel_to_snake("book") == "book"

    def test_snake_to_camel(self):
        assert snake_to_camel("book_page") == "BookPage"
        assert snake_to_camel("book_page", upper_first=False) == "bookPage"

    def test_parse_list_property(self):
        assert parse_list_property("ownBookPage") == ListProperty("own", "book_page")
        assert parse_list_property("sharedTag") == ListProperty("shared", "tag")
        assert parse_list_property("ownBookPage", beautify=False) == ListProperty("own", "bookPage")

    def test_plain_names_are_not_lists(self):
        assert parse_list_property("owner") is None
        assert parse_list_property("shared") is None
        assert parse_list_property("title") is None

    def test_list_names_for_type(self):
        assert own_list_name("book_page") == "ownBookPage"
        assert shared_list_name("tag") == "sharedTag"

    def test_link_type_name_is_sorted(self):
        assert link_type_name("product", "order") == "order_product"
        assert link_type_name("order", "product") == "order_product"

    def test_link_type_name_rename(self):
        assert link_type_name("product", "order", {"order_product": "basket"}) == "basket"

    def test_link_columns(self):
        assert link_columns("book", "tag") == ("book_id", "tag_id")
        assert link_columns("person", "person") == ("person_id", "person2_id")


class TestTypeDetector:
    def test_null(self):
        assert TypeDetector.profile(None).kind == ValueKind.NULL

    def test_bool(self):
        profile = TypeDetector.profile(True)
        assert profile.kind == ValueKind.BOOL
        assert profile.text == "1"

    def test_integer_string_is_numeric(self):
        profile = TypeDetector.profile("12")
        assert profile.kind == ValueKind.NUMBER
        assert profile.integral
        assert profile.number == 12

    def test_float(self):
        profile = TypeDetector.profile(3.5)
        assert profile.kind == ValueKind.NUMBER
        assert not profile.integral
        assert profile.is_python_float

    def test_whole_float_keeps_float_flag(self):
        profile = TypeDetector.profile(3.0)
        assert profile.text == "3"
        assert profile.integral
        assert profile.is_python_float

    def test_decimal(self):
        profile = TypeDetector.profile(Decimal("2.50"))
        assert profile.kind == ValueKind.NUMBER
        assert profile.text == "2.50"

    @pytest.mark.parametrize("text", ["007", "00", "0123"])
    def test_leading_zeros(self, text):
        assert TypeDetector.profile(text).leading_zeros

    @pytest.mark.parametrize("text", ["0", "0.5", "10", ""])
    def test_no_leading_zeros(self, text):
        assert not TypeDetector.profile(text).leading_zeros

    def test_dates(self):
        assert TypeDetector.profile("2024-01-31").is_date
        assert TypeDetector.profile("2024-01-31 10:11:12").is_datetime
        assert TypeDetector.profile(date(2024, 1, 31)).is_date
        assert TypeDetector.profile(datetime(2024, 1, 31, 10, 11, 12)).is_datetime

    def test_invalid_date_is_text(self):
        profile = TypeDetector.profile("2024-13-45")
        assert not profile.is_date
        assert profile.kind == ValueKind.TEXT

    def test_byte_length_is_utf8(self):
        assert TypeDetector.profile("é").byte_length == 2

    def test_integral_between(self):
        profile = TypeDetector.profile(300)
        assert profile.integral_between(0, 4294967295)
        assert not profile.integral_between(0, 255)

    def test_can_be_treated_as_int(self):
        assert TypeDetector.can_be_treated_as_int("42")
        assert TypeDetector.can_be_treated_as_int(-3)
        assert not TypeDetector.can_be_treated_as_int("4.2")
        assert not TypeDetector.can_be_treated_as_int("042")

    def test_non_scalar_rejected(self):
        with pytest.raises(ValidationError):
            TypeDetector.profile(["a"])


class TestValueNormalizer:
    def test_booleans_become_flags(self):
        assert ValueNormalizer.normalize(True) == "1"
        assert ValueNormalizer.normalize(False) == "0"

    def test_dates_become_strings(self):
        assert ValueNormalizer.normalize(datetime(2024, 5, 6, 7, 8, 9)) == "2024-05-06 07:08:09"
        assert ValueNormalizer.normalize(date(2024, 5, 6)) == "2024-05-06"

    def test_scalars_unchanged(self):
        assert ValueNormalizer.normalize(None) is None
        assert ValueNormalizer.normalize(5) == "5"
        assert ValueNormalizer.normalize("x") == "x"

    def test_objects_rejected(self):
        with pytest.raises(ValidationError):
            ValueNormalizer.normalize(object())

    def test_numbers_become_text(self):
        assert ValueNormalizer.normalize(3000000000) == "3000000000"
        assert ValueNormalizer.normalize(3.25) == "3.25"
        assert ValueNormalizer.normalize(3.0) == "3"
        assert ValueNormalizer.normalize(Decimal("1.50")) == "1.50"

    def test_database_values_match_assigned_values(self):
        for value in (True, 7, 3000000000, 3.25, "12345", date(2024, 5, 6)):
            assert ValueNormalizer.from_database(value) == ValueNormalizer.normalize(value)
        assert ValueNormalizer.from_database(None) is None

    def test_database_blobs_pass_through(self):
        assert ValueNormalizer.from_database(b"\x00\x01") == b"\x00\x01"
