import phonenumbers
import pytest

from sendcore.phone import is_valid_recipient, is_wire_recipient, normalize_recipient


@pytest.mark.parametrize("phone", ["0241234567", "+233241234567", "233241234567", " 0551234567 ", "0201234567"])
def test_accepted_formats(phone):
    assert is_valid_recipient(phone)


@pytest.mark.parametrize("phone", ["", None, "024123456", "02412345678", "0541234567x", "0141234567", "+44241234567", "241234567", "+447911123456"])
def test_rejected_formats(phone):
    assert not is_valid_recipient(phone)


def test_normalization_rules():
    assert normalize_recipient("0241234567") == "233241234567"
    assert normalize_recipient("+233241234567") == "233241234567"
    assert normalize_recipient("233241234567") == "233241234567"
    assert normalize_recipient("  0241234567 ") == "233241234567"


def test_normalized_numbers_are_wire_ready():
    for phone in ("0241234567", "+233241234567", "233241234567"):
        assert is_wire_recipient(normalize_recipient(phone))
    assert not is_wire_recipient("+233241234567")
    assert not is_wire_recipient("0241234567")


def test_unparseable_input_raises_on_normalize():
    with pytest.raises(phonenumbers.NumberParseException):
        normalize_recipient("not-a-number")


def test_other_country_code():
    assert not is_valid_recipient("+233241234567", country_code="234")
    assert normalize_recipient("0241234567", country_code="234") == "234241234567"
