GENERIC_FAILURE_MESSAGE = "Failed to generate or email assessment"


class AssessmentServiceError(Exception):
    """Base exception for the assessment service."""

    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message safe to return to the caller."""
        if self.status_code >= 500:
            return GENERIC_FAILURE_MESSAGE
        return self.message


class RequestValidationFailed(AssessmentServiceError):
    """Raised when the submitted form fails field validation."""

    status_code = 400

    def __init__(self, errors: list[dict], detail: str | None = None):
        self.errors = errors
        super().__init__("Invalid form submission", detail)


class MissingFieldsError(AssessmentServiceError):
    """Raised when required fields or the verification token are absent."""

    status_code = 400


class BotDetectedError(AssessmentServiceError):
    """Raised when the honeypot is filled or CAPTCHA verification fails."""

    status_code = 403


class CaptchaVerificationError(AssessmentServiceError):
    """Raised when the CAPTCHA verification service cannot be reached."""
    pass


class SubscriberStoreError(AssessmentServiceError):
    """Raised when subscriber store reads or writes fail."""
    pass


class AIClientError(AssessmentServiceError):
    """Raised when completion API calls fail."""
    pass


class AssessmentGenerationError(AssessmentServiceError):
    """Raised when the completion output cannot be turned into an assessment."""
    pass


class RenderError(AssessmentServiceError):
    """Raised when the document-rendering service fails."""
    pass


class RenderTimeoutError(RenderError):
    """Raised when a render job does not finish within the poll budget."""
    pass


class MailDeliveryError(AssessmentServiceError):
    """Raised when the SMTP relay rejects or fails to send a message."""
    pass
