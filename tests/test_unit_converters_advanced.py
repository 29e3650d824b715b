"""
Unit tests for the advanced type converters.

Covers email, currency, class, enum, equal, forbidden, function, luhn, mac,
url, uuid and objectID rules.
"""

from decimal import Decimal

import pytest

from toolbridge.compiler.pipeline import UNDEFINED
from toolbridge.core.errors import InvalidDefaultError, MalformedRuleError, PayloadValidationError


def _reject(validator, value) -> PayloadValidationError:
    with pytest.raises(PayloadValidationError) as exc_info:
        validator.validate(value)
    return exc_info.value


class TestEmail:
    def test_valid_address_is_kept_verbatim(self, convert):
        """Test that a valid address is returned as given."""
        assert convert("email").validate("Jane.Doe@Company.io") == "Jane.Doe@Company.io"

    def test_invalid_address(self, convert):
        """Test that a malformed address fails the format check."""
        exc = _reject(convert("email"), "jane.doe@")
        assert exc.stage == "shape"
        assert exc.check == "email.format"

    @pytest.mark.parametrize(
        "value", ["John Doe <john@example.com>", "<john@example.com>", " john@example.com"]
    )
    def test_display_name_and_padding_rejected(self, convert, value):
        """Test that only a bare address passes, not a display-name form."""
        assert _reject(convert("email"), value).check == "email.format"

    def test_normalize_trims_before_lowercasing(self, convert):
        """Test that normalize accepts outer whitespace and strips it."""
        assert convert("email|normalize").validate(" Jane@Company.io ") == "jane@company.io"

    def test_normalize(self, convert):
        """Test that normalize lowercases the address."""
        assert convert("email|normalize").validate("Jane.Doe@Company.io") == "jane.doe@company.io"

    def test_length_limits(self, convert):
        """Test the length limits on addresses."""
        validator = convert("email|max:12")
        assert _reject(validator, "jane.doe@company.io").check == "email.max"

    def test_schema(self, convert):
        """Test the email schema."""
        assert convert("email").json_schema() == {"type": "string", "format": "email"}


class TestCurrency:
    def test_default_format(self, convert):
        """Test the default dollar amount format."""
        validator = convert({"type": "currency", "currencySymbol": "$"})

        assert validator.validate("$12,345.67") == "$12,345.67"
        assert validator.validate("$0.5") == "$0.5"
        assert _reject(validator, "12,345.67").check == "currency.pattern"

    def test_custom_separators(self, convert):
        """Test custom thousand and decimal separators."""
        validator = convert(
            {
                "type": "currency",
                "currencySymbol": "€",
                "thousandSeparator": ".",
                "decimalSeparator": ",",
            }
        )

        assert validator.validate("€1.234,56") == "€1.234,56"
        assert _reject(validator, "€1x234,56").check == "currency.pattern"

    def test_optional_multi_character_symbol(self, convert):
        """Test an optional multi-character currency symbol."""
        validator = convert({"type": "currency", "currencySymbol": "USD", "symbolOptional": True})

        assert validator.validate("USD100") == "USD100"
        assert validator.validate("100") == "100"
        assert _reject(validator, "US100").check == "currency.pattern"

    def test_custom_regex(self, convert):
        """Test that customRegex replaces the built pattern."""
        validator = convert({"type": "currency", "customRegex": r"^\d+ EUR$"})

        assert validator.validate("12 EUR") == "12 EUR"
        assert _reject(validator, "EUR 12").check == "currency.pattern"


class TestClass:
    def test_instance_check(self, convert):
        """Test the instanceOf check."""
        validator = convert({"type": "class", "instanceOf": Decimal})

        assert validator.validate(Decimal("1.5")) == Decimal("1.5")
        assert _reject(validator, 1.5).check == "class.instance"

    def test_instance_default_is_not_called(self, convert):
        """Test that an instance default is used as is, not called."""
        class Greeter:
            def __call__(self):
                return "not a greeter"

        default = Greeter()
        validator = convert({"type": "class", "instanceOf": Greeter, "default": default})
        assert validator.validate() is default


class TestEnum:
    def test_strict_membership(self, convert):
        """Test that enum membership uses strict equality."""
        validator = convert({"type": "enum", "values": [1, "two", True]})

        assert validator.validate(1) == 1
        assert validator.validate("two") == "two"
        assert _reject(validator, "1").check == "enum.values"
        assert _reject(validator, 1.5).stage == "refine"

    def test_booleans_do_not_match_numbers(self, convert):
        """Test that True does not match 1."""
        validator = convert({"type": "enum", "values": [1, 0]})
        assert _reject(validator, True).check == "enum.values"

    def test_schema(self, convert):
        """Test the enum schema."""
        assert convert({"type": "enum", "values": ["a", "b"]}).json_schema() == {"enum": ["a", "b"]}


class TestEqual:
    def test_loose_equality_by_default(self, convert):
        """Test that equal compares loosely by default."""
        validator = convert({"type": "equal", "value": 5})

        assert validator.validate(5) == 5
        assert validator.validate("5") == "5"
        assert _reject(validator, 6).check == "equal.value"

    def test_strict_equality(self, convert):
        """Test that strict equal needs the same kind."""
        validator = convert({"type": "equal", "value": 5, "strict": True})

        assert validator.validate(5.0) == 5.0
        exc = _reject(validator, "5")
        assert exc.stage == "refine"
        assert exc.check == "equal.value"

    def test_schema(self, convert):
        """Test the equal schema."""
        assert convert({"type": "equal", "value": "yes"}).json_schema() == {"const": "yes"}


class TestForbidden:
    def test_absent_or_null_passes(self, convert):
        """Test that absent and null values pass a forbidden rule."""
        validator = convert("forbidden")

        assert validator.validate() is UNDEFINED
        assert validator.validate(None) is UNDEFINED
        assert validator.required is False

    def test_present_value_rejected(self, convert):
        """Test that a present value fails a forbidden rule."""
        exc = _reject(convert("forbidden"), "anything")
        assert exc.stage == "refine"
        assert exc.check == "forbidden.present"

    def test_remove_drops_the_value(self, convert):
        """Test that remove drops a forbidden value."""
        assert convert("forbidden|remove").validate("anything") is UNDEFINED

    def test_schema(self, convert):
        """Test the forbidden schema."""
        assert convert("forbidden").json_schema() == {"not": {}}
        assert convert("forbidden|remove").json_schema() == {}


class TestFunction:
    def test_callables(self, convert):
        """Test that only callables pass."""
        validator = convert("function")

        assert validator.validate(len) is len
        assert _reject(validator, "len").check == "function.type"

    def test_callable_default_is_the_value(self, convert):
        """Test that a callable default is the value itself."""
        validator = convert({"type": "function", "default": print})
        assert validator.validate() is print

    def test_non_callable_default(self, convert):
        """Test that a non-callable default fails at compile time."""
        with pytest.raises(InvalidDefaultError):
            convert({"type": "function", "default": "print"})


class TestLuhn:
    def test_checksum(self, convert):
        """Test the Luhn checksum."""
        validator = convert("luhn")

        assert validator.validate("4539148803436467") == "4539148803436467"
        exc = _reject(validator, "4539148803436468")
        assert exc.stage == "refine"
        assert exc.check == "luhn.checksum"

    def test_separators_are_ignored(self, convert):
        """Test that separators are ignored by the checksum."""
        assert convert("luhn").is_valid("4539 1488 0343 6467")

    def test_value_without_digits(self, convert):
        """Test that a value with no digits fails."""
        assert not convert("luhn").is_valid("----")

    def test_convert_accepts_numbers(self, convert):
        """Test that convert turns card numbers into text."""
        assert convert("luhn|convert").validate(4539148803436467) == "4539148803436467"


class TestMac:
    @pytest.mark.parametrize("value", ["01:C8:95:4B:65:FE", "01-c8-95-4b-65-fe", "01c8.954b.65fe"])
    def test_valid_addresses(self, convert, value):
        """Test the accepted MAC address groupings."""
        assert convert("mac").validate(value) == value

    @pytest.mark.parametrize("value", ["01:C8:95:4B:65", "01:C8:95:4B:65:FG", "01C8954B65FE"])
    def test_invalid_addresses(self, convert, value):
        """Test malformed MAC addresses."""
        assert _reject(convert("mac"), value).check == "mac.pattern"


class TestUrl:
    def test_valid_url_is_kept_verbatim(self, convert):
        """Test that a valid URL is returned as given."""
        url = "https://api.company.io/v1/users"
        assert convert("url").validate(url) == url

    def test_invalid_url(self, convert):
        """Test that text that is not a URL fails."""
        exc = _reject(convert("url"), "not a url")
        assert exc.stage == "shape"
        assert exc.check == "url.format"

    def test_empty_allowed_when_declared(self, convert):
        """Test that empty:true accepts an empty URL."""
        assert convert("url|empty:true").validate("") == ""
        assert _reject(convert("url"), "").check == "url.format"

    def test_schema(self, convert):
        """Test the URL schema."""
        assert convert("url").json_schema() == {"type": "string", "format": "uri"}


class TestUuid:
    def test_valid_uuid(self, convert):
        """Test a canonical UUID."""
        value = "123e4567-e89b-12d3-a456-426614174000"
        assert convert("uuid").validate(value) == value

    def test_invalid_uuid(self, convert):
        """Test a truncated UUID."""
        assert _reject(convert("uuid"), "123e4567-e89b").check == "uuid.format"

    @pytest.mark.parametrize(
        "value",
        [
            "12345678123456781234567812345678",
            "{12345678-1234-5678-1234-567812345678}",
            "urn:uuid:12345678-1234-5678-1234-567812345678",
        ],
    )
    def test_non_canonical_spellings_rejected(self, convert, value):
        """Test that only the hyphenated 8-4-4-4-12 form passes."""
        assert _reject(convert("uuid"), value).check == "uuid.format"

    def test_uppercase_uuid_is_kept(self, convert):
        """Test that an uppercase hyphenated UUID passes unchanged."""
        value = "123E4567-E89B-12D3-A456-426614174000"
        assert convert("uuid").validate(value) == value

    def test_schema(self, convert):
        """Test the UUID schema."""
        assert convert("uuid").json_schema() == {"type": "string", "format": "uuid"}


class TestObjectId:
    def test_valid_string(self, convert, document_id_cls, document_id):
        """Test that a valid id string passes unchanged."""
        validator = convert({"type": "objectID", "ObjectID": document_id_cls})
        assert validator.validate(document_id) == document_id

    def test_invalid_string(self, convert, document_id_cls):
        """Test that an invalid id string fails the validity check."""
        validator = convert({"type": "objectID", "ObjectID": document_id_cls})

        exc = _reject(validator, "not-an-id")
        assert exc.stage == "refine"
        assert exc.check == "objectID.valid"

    def test_wrong_kind(self, convert, document_id_cls):
        """Test that a value of the wrong kind fails in SHAPE."""
        validator = convert({"type": "objectID", "ObjectID": document_id_cls})
        assert _reject(validator, 42).check == "objectID.type"

    def test_convert_to_instance(self, convert, document_id_cls, document_id):
        """Test that convert:true returns an id instance."""
        validator = convert({"type": "objectID", "ObjectID": document_id_cls, "convert": True})

        result = validator.validate(document_id)
        assert isinstance(result, document_id_cls)
        assert result == document_id_cls(document_id)

    def test_convert_to_hex_string(self, convert, document_id_cls, document_id):
        """Test that convert:hexString returns the string form."""
        validator = convert(
            {"type": "objectID", "ObjectID": document_id_cls, "convert": "hexString"}
        )
        assert validator.validate(document_id_cls(document_id)) == document_id

    def test_class_without_predicate(self, convert):
        """Test that an id class without is_valid is rejected."""
        class Opaque:
            pass

        with pytest.raises(MalformedRuleError):
            convert({"type": "objectID", "ObjectID": Opaque})
