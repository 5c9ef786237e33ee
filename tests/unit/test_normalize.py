"""Unit tests for attendance_etl.normalize."""

from datetime import date

from attendance_etl.normalize import (
    PROTECTED_EMAIL_SENTINEL,
    extract_protected_email,
    is_blank,
    normalize_email,
    normalize_name,
    normalize_phone10,
    normalize_space,
    parse_int,
    parse_number,
    parse_trans_date,
    split_full_name,
    strip_parenthetical,
    trim,
)


# ---------------------------------------------------------------------------
# trim / normalize_space / is_blank
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_strips_nbsp(self):
        assert trim("\xa0hello\xa0") == "hello"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestNormalizeSpace:
    def test_collapses_internal_spaces(self):
        assert normalize_space("Diva   Sheth") == "Diva Sheth"

    def test_collapses_tabs_and_newlines(self):
        assert normalize_space("Diva\t\nSheth") == "Diva Sheth"

    def test_none(self):
        assert normalize_space(None) is None


class TestIsBlank:
    def test_dash_placeholder(self):
        assert is_blank("-")
        assert is_blank(" -- ")

    def test_whitespace(self):
        assert is_blank("   ")

    def test_value(self):
        assert not is_blank("0")


# ---------------------------------------------------------------------------
# Match keys
# ---------------------------------------------------------------------------

class TestNormalizeName:
    def test_lowercases_and_trims(self):
        assert normalize_name("  Disha DAGA\xa0") == "disha daga"

    def test_internal_spacing_kept(self):
        assert normalize_name("Disha  Daga") == "disha  daga"

    def test_keeps_punctuation(self):
        assert normalize_name("D'Souza, Anil") == "d'souza, anil"

    def test_empty(self):
        assert normalize_name("") is None


class TestNormalizeEmail:
    def test_lowercases(self):
        assert normalize_email("User@Example.COM") == "user@example.com"

    def test_protected_sentinel_never_matches(self):
        assert normalize_email(PROTECTED_EMAIL_SENTINEL) is None

    def test_empty(self):
        assert normalize_email("  ") is None


class TestNormalizePhone10:
    def test_plain_ten_digits(self):
        assert normalize_phone10("9876543210") == "9876543210"

    def test_strips_punctuation(self):
        assert normalize_phone10("98765-43210") == "9876543210"

    def test_strips_country_code(self):
        assert normalize_phone10("+91 98765 43210") == "9876543210"

    def test_strips_country_code_without_plus(self):
        assert normalize_phone10("919876543210") == "9876543210"

    def test_ten_digit_number_starting_with_91_kept(self):
        assert normalize_phone10("9198765432") == "9198765432"

    def test_leading_zero_trunk_prefix_uses_last_ten(self):
        assert normalize_phone10("09876543210") == "9876543210"

    def test_too_short(self):
        assert normalize_phone10("12345") is None

    def test_none(self):
        assert normalize_phone10(None) is None

    def test_other_country_code(self):
        assert normalize_phone10("+1 212 555 0100", country_code="1") == "2125550100"


# ---------------------------------------------------------------------------
# Numbers and dates
# ---------------------------------------------------------------------------

class TestParseNumber:
    def test_integer(self):
        assert parse_number("3") == (3.0, True)

    def test_thousands_separator(self):
        assert parse_number("1,250.50") == (1250.5, True)

    def test_blank_is_zero_without_warning(self):
        assert parse_number("") == (0.0, True)
        assert parse_number("-") == (0.0, True)

    def test_garbage_is_zero_with_warning(self):
        assert parse_number("n/a") == (0.0, False)

    def test_parse_int_truncates(self):
        assert parse_int("2.9") == (2, True)


class TestParseTransDate:
    def test_date_and_time(self):
        assert parse_trans_date("08-10-2025 14:22:05") == date(2025, 10, 8)

    def test_date_only(self):
        assert parse_trans_date("09-10-2025") == date(2025, 10, 9)

    def test_iso_rejected(self):
        assert parse_trans_date("2025-10-09") is None

    def test_garbage(self):
        assert parse_trans_date("soon") is None

    def test_empty(self):
        assert parse_trans_date("") is None


# ---------------------------------------------------------------------------
# Emails in report cells
# ---------------------------------------------------------------------------

class TestExtractProtectedEmail:
    def test_plain_address(self):
        assert extract_protected_email("asha@example.com") == "asha@example.com"

    def test_address_inside_text(self):
        assert extract_protected_email("mailto: asha@example.com ") == "asha@example.com"

    def test_protected_markup(self):
        assert extract_protected_email("[email&#160;protected]") == PROTECTED_EMAIL_SENTINEL

    def test_protected_decoded_space(self):
        assert extract_protected_email("[email protected]") == PROTECTED_EMAIL_SENTINEL

    def test_non_address_text_kept(self):
        assert extract_protected_email("not given") == "not given"

    def test_empty(self):
        assert extract_protected_email(None) == ""


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------

class TestStripParenthetical:
    def test_strips_annotation(self):
        assert strip_parenthetical("Asha Rao (volunteer)") == "Asha Rao"

    def test_no_annotation(self):
        assert strip_parenthetical("Asha Rao") == "Asha Rao"

    def test_only_annotation(self):
        assert strip_parenthetical("(guest)") is None


class TestSplitFullName:
    def test_two_tokens(self):
        assert split_full_name("Diva Sheth") == ("Diva", "Sheth")

    def test_three_tokens(self):
        assert split_full_name("Mira Anand Shah") == ("Mira", "Anand Shah")

    def test_single_token_repeated(self):
        assert split_full_name("Mira") == ("Mira", "Mira")

    def test_single_token_not_repeated(self):
        assert split_full_name("Mira", repeat_single=False) == ("Mira", "")

    def test_empty(self):
        assert split_full_name("  ") == ("", "")
