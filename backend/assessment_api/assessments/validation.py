import logging
from typing import Any

from pydantic import ValidationError

from assessment_api.schemas.assessment import GenerateAssessmentRequest
from assessment_api.shared.exceptions import (
    MissingFieldsError,
    RequestValidationFailed,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["name", "email", "company", "company_size", "it_challenge", "consent"]


def _error_list(exc: ValidationError) -> list[dict[str, str]]:
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })
    return errors


def validate_submission(body: Any) -> GenerateAssessmentRequest:
    """First pass: field shape, length and type constraints."""
    if not isinstance(body, dict):
        raise RequestValidationFailed(
            [{"field": "body", "message": "Request body must be a JSON object", "type": "type_error"}]
        )
    try:
        return GenerateAssessmentRequest.model_validate(body)
    except ValidationError as e:
        errors = _error_list(e)
        logger.info(f"Rejected submission with {len(errors)} validation error(s)")
        raise RequestValidationFailed(errors, detail=str(e))


def check_required_fields(body: dict) -> None:
    """Second pass over the raw body: required fields and the verification token."""
    form_data = body.get("formData") or {}
    missing = [name for name in REQUIRED_FIELDS if not form_data.get(name)]
    if missing or not body.get("verificationToken"):
        raise MissingFieldsError(f"Missing required fields: {', '.join(missing)} or verificationToken")
