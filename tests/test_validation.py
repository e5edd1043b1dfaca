"""
Field rule and payload validation tests.
"""
import pytest

from core.errors import ValidationError
from core.forms import contact_rules, signup_rules, subdomain_contact_rules
from core.validation import ErrorMode, FieldRule, normalize_email, validate


def messages(excinfo):
    return [error['message'] for error in excinfo.value.errors]


class TestFieldRule:

    def test_trims_before_checking(self):
        value, errors = FieldRule('name').required('Name is required').check('   Ann  ')
        assert value == 'Ann'
        assert errors == []

    def test_whitespace_only_is_missing(self):
        value, errors = FieldRule('name').required('Name is required').check('   ')
        assert value is None
        assert errors == ['Name is required']

    def test_optional_blank_field_is_skipped(self):
        rule = FieldRule('phone').optional().max_length(2, 'too long')
        assert rule.check('') == (None, [])
        assert rule.check(None) == (None, [])

    def test_collects_every_failing_check(self):
        rule = (FieldRule('phone').required('Phone number is required')
                .matches(r'\d*', 'Phone number is invalid')
                .exact_length(10, 'Phone number must be 10 digits'))
        _, errors = rule.check('12ab')
        assert errors == ['Phone number is invalid', 'Phone number must be 10 digits']

    def test_escape_applies_after_length_checks(self):
        rule = FieldRule('name').required('x').max_length(3, 'too long').escape()
        value, errors = rule.check('<b>')
        assert errors == []
        assert value == '&lt;b&gt;'

    def test_non_string_values_are_coerced(self):
        assert FieldRule('age').required('x').check(42) == ('42', [])
        assert FieldRule('age').required('Age is required').check({'a': 1}) == (None, ['Age is required'])


class TestEmail:

    def test_normalizes_case_and_whitespace(self):
        assert normalize_email(' Foo@EXAMPLE.com ') == 'foo@example.com'

    def test_invalid_email_is_reported(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({'name': 'Ann', 'email': 'not-an-email'}, subdomain_contact_rules())
        assert excinfo.value.errors == [{'field': 'email', 'message': 'Email is invalid'}]


class TestValidate:

    def test_contact_payload_is_cleaned(self):
        cleaned = validate({
            'name': ' Ann <i>Lee</i> ',
            'email': 'ANN@example.com',
            'category': 'Stress',
            'age': '31',
            'message': 'Hello & welcome',
        }, contact_rules())

        assert cleaned['name'] == 'Ann &lt;i&gt;Lee&lt;/i&gt;'
        assert cleaned['email'] == 'ann@example.com'
        assert cleaned['phone'] is None
        assert cleaned['message'] == 'Hello &amp; welcome'

    def test_all_mode_reports_every_field_in_rule_order(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({}, contact_rules())
        assert [error['field'] for error in excinfo.value.errors] == [
            'name', 'email', 'category', 'age', 'message'
        ]

    def test_first_mode_stops_at_first_error(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({}, contact_rules(), ErrorMode.FIRST)
        assert excinfo.value.errors == [{'field': 'name', 'message': 'Name is required'}]

    def test_non_mapping_payload_is_treated_as_empty(self):
        with pytest.raises(ValidationError) as excinfo:
            validate(['name', 'email'], subdomain_contact_rules())
        assert messages(excinfo) == ['Name is required', 'Email is required']

    def test_signup_rules(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({'name': 'Al', 'email': 'al@example.com', 'phone': '12345'}, signup_rules())
        assert messages(excinfo) == [
            'Name must be at least 3 characters',
            'Phone number must be 10 digits',
        ]

    def test_signup_phone_requires_ascii_digits(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({'name': 'Ravi Kumar', 'email': 'ravi@example.com', 'phone': '१२३४५६७८९०'},
                     signup_rules())
        assert excinfo.value.errors == [{'field': 'phone', 'message': 'Phone number is invalid'}]

    @pytest.mark.parametrize('rules', [contact_rules, subdomain_contact_rules])
    def test_contact_phone_rejects_non_ascii_digits(self, rules):
        payload = {'name': 'Ann', 'email': 'ann@example.com', 'category': 'Stress',
                   'age': '31', 'message': 'Hi', 'phone': '+91 ٩٨٧٦٥٤٣٢١٠'}
        with pytest.raises(ValidationError) as excinfo:
            validate(payload, rules())
        assert excinfo.value.errors == [{'field': 'phone', 'message': 'Phone contains invalid characters'}]

    def test_phone_charset_and_length(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({'name': 'Ann', 'email': 'ann@example.com', 'phone': 'call me maybe, anytime!'},
                     subdomain_contact_rules())
        assert messages(excinfo) == [
            'Phone must be less than 20 characters',
            'Phone contains invalid characters',
        ]

    def test_subdomain_name_limit(self):
        with pytest.raises(ValidationError) as excinfo:
            validate({'name': 'x' * 101, 'email': 'ann@example.com'}, subdomain_contact_rules())
        assert messages(excinfo) == ['Name must be less than 100 characters']
