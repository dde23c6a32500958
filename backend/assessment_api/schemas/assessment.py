import html
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

CompanySize = Literal["1-10", "11-50", "51-200", "200+"]


class FormSubmission(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    company: str = Field(..., min_length=1, max_length=100)
    company_size: CompanySize
    it_challenge: str = Field(..., min_length=1, max_length=100)
    it_setup: str | None = Field(None, max_length=200)
    consent: bool

    model_config = {"str_strip_whitespace": True}

    @field_validator("name", "company", "it_challenge", "it_setup")
    @classmethod
    def escape_html(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return html.escape(value, quote=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("consent", mode="before")
    @classmethod
    def consent_given(cls, value: Any) -> bool:
        # Only a JSON true or the string "true" counts as consent
        if value is True or value == "true":
            return True
        raise ValueError("Consent is required")


class GenerateAssessmentRequest(BaseModel):
    form_data: FormSubmission = Field(..., alias="formData")
    verification_token: str | None = Field(None, alias="verificationToken")
    honeypot: Any = None
    recaptcha_token: str = Field(..., alias="recaptchaToken", min_length=1)

    model_config = {"populate_by_name": True}


class RecommendationStep(BaseModel):
    step: int | str
    action: str


class AssessmentSection(BaseModel):
    title: str
    content: str | list[RecommendationStep]


class AssessmentDocument(BaseModel):
    company: str
    company_size: str
    it_challenge: str
    assessment_sections: list[AssessmentSection] = Field(..., alias="assessmentSections")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_sections(self) -> "AssessmentDocument":
        if len(self.assessment_sections) != 4:
            raise ValueError(f"expected 4 assessment sections, got {len(self.assessment_sections)}")
        if not isinstance(self.assessment_sections[2].content, list):
            raise ValueError("Recommendations content must be a list of steps")
        return self

    @property
    def overview(self) -> AssessmentSection:
        return self.assessment_sections[0]

    @property
    def challenge_analysis(self) -> AssessmentSection:
        return self.assessment_sections[1]

    @property
    def recommendations(self) -> AssessmentSection:
        return self.assessment_sections[2]

    @property
    def next_steps(self) -> AssessmentSection:
        return self.assessment_sections[3]


class AssessmentResponse(BaseModel):
    message: str
    download_url: str | None = Field(None, serialization_alias="downloadUrl")
