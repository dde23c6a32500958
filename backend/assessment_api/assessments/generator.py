import logging

from pydantic import ValidationError

from assessment_api.assessments.parsing import extract_json_object
from assessment_api.schemas.assessment import AssessmentDocument, FormSubmission
from assessment_api.shared.exceptions import AssessmentGenerationError
from assessment_api.shared.interfaces import CompletionProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an IT consulting expert. Return only valid JSON, no extra text."

USER_PROMPT_TEMPLATE = """Generate a professional IT assessment in strict JSON format for {name} from {company}.
- Company size: {company_size}
- Primary IT challenge: {it_challenge}
- Current IT setup: {it_setup}
Return ONLY a valid JSON object (no extra text, no Markdown, no code blocks) with:
- "company": Company name
- "company_size": Size (e.g., "1-10")
- "it_challenge": Primary challenge
- "assessmentSections": Array of sections with "title" and "content":
  1. "Overview": Brief company and IT context
  2. "Challenge Analysis": Analyze the IT challenge
  3. "Recommendations": 9-10 tailored solutions, as an array of {{"step": number, "action": text}}
  4. "Next Steps": Call to schedule a consultation
Keep it concise, professional, and under 300 words total.

Example:
{{
  "company": "Tech Co",
  "company_size": "11-50",
  "it_challenge": "cybersecurity-risks",
  "assessmentSections": [
    {{"title": "Overview", "content": "Tech Co is a mid-sized firm with growing IT needs."}},
    {{"title": "Challenge Analysis", "content": "Cybersecurity risks threaten data integrity."}},
    {{"title": "Recommendations", "content": [{{"step": 1, "action": "Deploy firewalls."}}, {{"step": 2, "action": "Train staff."}}, {{"step": 3, "action": "Audit systems."}}]}},
    {{"title": "Next Steps", "content": "Schedule a consultation to implement solutions."}}
  ]
}}"""


def build_prompt(form: FormSubmission) -> str:
    return USER_PROMPT_TEMPLATE.format(
        name=form.name,
        company=form.company,
        company_size=form.company_size,
        it_challenge=form.it_challenge,
        it_setup=form.it_setup or "Not provided",
    )


class AssessmentGenerator:
    """Turns a form submission into a structured assessment via the completion API."""

    def __init__(self, completion: CompletionProvider, max_tokens: int = 1000, temperature: float = 0.5):
        self.completion = completion
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(self, form: FormSubmission) -> AssessmentDocument:
        raw = await self.completion.complete(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_prompt(form),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        data = extract_json_object(raw)

        try:
            assessment = AssessmentDocument.model_validate(data)
        except ValidationError as e:
            logger.error(f"Assessment JSON has unexpected shape: {e}")
            raise AssessmentGenerationError("Assessment JSON has unexpected shape", detail=str(e))

        logger.info(
            f"Generated assessment for {form.company}: "
            f"{len(assessment.recommendations.content)} recommendations"
        )
        return assessment
