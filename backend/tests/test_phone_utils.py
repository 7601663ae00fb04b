from wacrm.shared.utils.phone_utils import normalize_phone_number, validate_phone


def test_international_number_normalized_to_wa_id():
    assert normalize_phone_number("+91 98765 43210") == "919876543210"
    assert normalize_phone_number("0091-98765-43210") == "919876543210"


def test_national_number_uses_default_region():
    assert normalize_phone_number("98765 43210", default_country="IN") == "919876543210"


def test_validation_result_details():
    result = validate_phone("+14155552671")

    assert result.is_valid is True
    assert result.e164 == "+14155552671"
    assert result.country == "US"


def test_empty_and_unparseable_numbers():
    assert validate_phone("   ").is_valid is False
    assert normalize_phone_number("+000 12") == "12"
