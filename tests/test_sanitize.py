"""Unit tests for input sanitization helpers."""

from __future__ import annotations

import math

from sanitize import (
    MAX_TEXT_LENGTH,
    clean_email,
    finite_number,
    first_categories,
    parse_coordinate,
    parse_count,
    sanitize_input,
    string_list,
    text_or_default,
)


def test_sanitize_input_strips_angle_brackets() -> None:
    assert sanitize_input("<script>alert(1)</script>") == "scriptalert(1)/script"


def test_sanitize_input_caps_length() -> None:
    assert len(sanitize_input("x" * (MAX_TEXT_LENGTH + 50))) == MAX_TEXT_LENGTH


def test_sanitize_input_rejects_non_strings() -> None:
    assert sanitize_input(None) == ""
    assert sanitize_input(42) == ""


def test_text_or_default_uses_default_for_blank() -> None:
    assert text_or_default("", "Imported Place") == "Imported Place"
    assert text_or_default(None, "other") == "other"
    assert text_or_default("<Cafe>", "other") == "Cafe"


def test_finite_number_only_accepts_real_numbers() -> None:
    assert finite_number(12.5) == 12.5
    assert finite_number(3) == 3
    assert finite_number("12") == 0
    assert finite_number(True) == 0
    assert finite_number(math.inf) == 0
    assert finite_number(math.nan) == 0


def test_parse_coordinate_is_lenient() -> None:
    assert parse_coordinate("48.858") == 48.858
    assert parse_coordinate(2.294) == 2.294
    assert parse_coordinate("north") == 0
    assert parse_coordinate(None) == 0
    assert parse_coordinate("nan") == 0


def test_parse_count() -> None:
    assert parse_count("4") == 4
    assert parse_count(-2) == 0
    assert parse_count(None) == 0


def test_first_categories_keeps_three() -> None:
    assert first_categories(["Food & Drink", "Nightlife", "Cultural", "Family"]) == [
        "Food & Drink",
        "Nightlife",
        "Cultural",
    ]
    assert first_categories("Food") == []


def test_string_list_and_email() -> None:
    assert string_list(["https://a/1.jpg", 3, None]) == ["https://a/1.jpg"]
    assert string_list(None) == []
    assert clean_email("  a@b.com ") == "a@b.com"
    assert clean_email("   ") is None
    assert clean_email(7) is None


def test_numbers_too_large_for_a_float_become_zero() -> None:
    huge = 10**400

    assert finite_number(huge) == 0
    assert finite_number(-huge) == 0
    assert parse_coordinate(huge) == 0
    assert parse_count(huge) == 0
    assert parse_count(str(huge)) == 0
