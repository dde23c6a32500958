import pytest

from conftest import make_body
from assessment_api.assessments.validation import check_required_fields, validate_submission
from assessment_api.shared.exceptions import MissingFieldsError, RequestValidationFailed


class TestValidateSubmission:
    def test_valid_submission_is_sanitized(self):
        request = validate_submission(make_body({"name": "  <b>Jane</b> ", "email": "Jane.Doe@ACME-corp.com"}))
        form = request.form_data
        assert form.name == "&lt;b&gt;Jane&lt;/b&gt;"
        assert form.email == "jane.doe@acme-corp.com"
        assert form.company == "Acme &amp; Co"
        assert request.verification_token == "tok-4f2a9c1e7b"

    def test_length_is_checked_before_escaping(self):
        # 50 chars of "&" escapes to 250 chars but is still a valid name
        request = validate_submission(make_body({"name": "&" * 50}))
        assert request.form_data.name == "&amp;" * 50

    def test_name_too_long(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            validate_submission(make_body({"name": "x" * 51}))
        assert exc_info.value.errors[0]["field"] == "formData.name"

    def test_whitespace_only_company_rejected(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            validate_submission(make_body({"company": "   "}))
        assert exc_info.value.errors[0]["field"] == "formData.company"

    def test_setup_too_long(self):
        with pytest.raises(RequestValidationFailed):
            validate_submission(make_body({"it_setup": "y" * 201}))

    def test_invalid_email(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            validate_submission(make_body({"email": "not-an-email"}))
        assert exc_info.value.errors[0]["field"] == "formData.email"

    @pytest.mark.parametrize("size", ["1-10", "11-50", "51-200", "200+"])
    def test_company_sizes(self, size):
        assert validate_submission(make_body({"company_size": size})).form_data.company_size == size

    def test_consent_must_be_true(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            validate_submission(make_body({"consent": False}))
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("consent", ["yes", "on", "1", "t", "True", 1, 0, None, [True]])
    def test_consent_rejects_loose_truthy_values(self, consent):
        with pytest.raises(RequestValidationFailed) as exc_info:
            validate_submission(make_body({"consent": consent}))
        assert exc_info.value.errors[0]["field"] == "formData.consent"

    def test_consent_accepts_string_true(self):
        assert validate_submission(make_body({"consent": "true"})).form_data.consent is True

    @pytest.mark.parametrize("honeypot", [1, True, "filled", {"url": "x"}])
    def test_any_honeypot_value_is_accepted(self, honeypot):
        assert validate_submission(make_body(honeypot=honeypot)).honeypot == honeypot

    def test_empty_recaptcha_token(self):
        with pytest.raises(RequestValidationFailed):
            validate_submission(make_body(recaptchaToken=""))

    def test_non_object_body(self):
        with pytest.raises(RequestValidationFailed):
            validate_submission(["formData"])


class TestCheckRequiredFields:
    def test_complete_body_passes(self):
        check_required_fields(make_body())

    def test_missing_token(self):
        body = make_body(verificationToken="")
        with pytest.raises(MissingFieldsError) as exc_info:
            check_required_fields(body)
        assert exc_info.value.message == "Missing required fields:  or verificationToken"

    def test_lists_missing_fields(self):
        body = make_body({"company": "", "consent": False})
        with pytest.raises(MissingFieldsError) as exc_info:
            check_required_fields(body)
        assert exc_info.value.message == "Missing required fields: company, consent or verificationToken"
