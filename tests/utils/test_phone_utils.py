import pytest

from task_messenger.shared.utils.phone_utils import PhoneNormalizer, mask, mask_phone_numbers, validate_phone


@pytest.mark.parametrize("raw, expected", [
    ("052-876-5432", "+972528765432"),
    ("0528765432", "+972528765432"),
    ("+972 52 876 5432", "+972528765432"),
    ("972528765432", "+972528765432"),
    ("00972528765432", "+972528765432"),
    ("(052) 876-5432", "+972528765432"),
])
def test_normalize_israeli_mobile_formats(raw, expected):
    assert PhoneNormalizer("IL").normalize(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "123", "0521234"])
def test_normalize_rejects_unusable_values(raw):
    assert PhoneNormalizer("IL").normalize(raw) is None


def test_landlines_need_explicit_permission():
    assert PhoneNormalizer("IL").normalize("03-1234567") is None
    assert PhoneNormalizer("IL", permit_landlines=True).normalize("03-1234567") == "+97231234567"


def test_foreign_numbers_keep_their_country():
    result = validate_phone("+44 7400 123456", "IL")
    assert result.is_valid
    assert result.e164 == "+447400123456"
    assert result.country == "GB"
    assert result.is_mobile


def test_validate_reports_errors():
    assert validate_phone("").error == "Phone number is empty"
    assert validate_phone("hello").is_valid is False


@pytest.mark.parametrize("phone, masked", [
    ("+972528765432", "+9725******32"),
    ("+14155552671", "+1415*****71"),
    ("1234567", "*******"),
    ("", "none"),
    (None, "none"),
])
def test_mask(phone, masked):
    assert mask(phone) == masked


@pytest.mark.parametrize("text, expected", [
    ("Recipient +972528765432 unknown", "Recipient +9725******32 unknown"),
    ('{"to": "052-876-5432"}', '{"to": "05287***32"}'),
    ("call +972 52 876 5432 now", "call +9725******32 now"),
])
def test_mask_phone_numbers_in_text(text, expected):
    assert mask_phone_numbers(text) == expected


@pytest.mark.parametrize("text", [
    "Task 00T000000000001 failed",
    "due 2024-03-05",
    "400 Bad Request :: rejected",
    "",
])
def test_mask_phone_numbers_leaves_other_text_alone(text):
    assert mask_phone_numbers(text) == text
