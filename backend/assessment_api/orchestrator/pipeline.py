"""
Assessment Pipeline Orchestrator

Runs one form submission through validation, the bot gate, the 48-hour
regeneration check, AI generation, the throttle timestamp upsert, PDF
rendering and the notification email. Steps run strictly in order and the
first failure aborts the rest.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from assessment_api.assessments.generator import AssessmentGenerator
from assessment_api.assessments.validation import check_required_fields, validate_submission
from assessment_api.config import Settings, get_settings
from assessment_api.database import get_session_factory
from assessment_api.schemas.assessment import AssessmentDocument, FormSubmission
from assessment_api.shared.ai_client import AIClient
from assessment_api.shared.captcha_client import RecaptchaClient
from assessment_api.shared.exceptions import BotDetectedError
from assessment_api.shared.interfaces import (
    CaptchaVerifier,
    DocumentRenderer,
    Notifier,
    SubscriberStore,
)
from assessment_api.shared.mailer import SMTPMailer
from assessment_api.shared.render_client import PDFMonkeyClient
from assessment_api.subscribers.store import PostgresSubscriberStore

logger = logging.getLogger(__name__)

ALREADY_GENERATED_MESSAGE = "Assessment already generated within 48 hours"
SUCCESS_MESSAGE = "Assessment generated and emailed successfully"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineResult:
    message: str
    download_url: str | None = None


def build_render_payload(form: FormSubmission, assessment: AssessmentDocument, today: datetime) -> dict:
    return {
        "name": form.name,
        "company": form.company,
        "company_size": form.company_size,
        "it_challenge": form.it_challenge,
        "it_setup": form.it_setup or "Not provided",
        "date": today.date().isoformat(),
        "overview": assessment.overview.model_dump(),
        "challengeAnalysis": assessment.challenge_analysis.model_dump(),
        "recommendations": assessment.recommendations.model_dump(),
        "nextSteps": assessment.next_steps.model_dump(),
    }


class AssessmentPipeline:
    """Orchestrates a single assessment request."""

    def __init__(
        self,
        captcha: CaptchaVerifier,
        store: SubscriberStore,
        generator: AssessmentGenerator,
        renderer: DocumentRenderer,
        notifier: Notifier,
        lead_magnet: str = "IT Assessment",
        window: timedelta = timedelta(hours=48),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.captcha = captcha
        self.store = store
        self.generator = generator
        self.renderer = renderer
        self.notifier = notifier
        self.lead_magnet = lead_magnet
        self.window = window
        self.clock = clock

    async def run(self, body: Any, remote_ip: str | None = None) -> PipelineResult:
        """Main pipeline entry point. Raises AssessmentServiceError subclasses on failure."""
        # Step 1: Field validation
        request = validate_submission(body)
        form = request.form_data

        # Step 2: Bot gate
        await self._check_bot(request.honeypot, request.recaptcha_token, remote_ip)

        check_required_fields(body)
        token = request.verification_token

        # Step 3: Regeneration window
        if await self._recently_generated(token):
            logger.info(f"{self.lead_magnet} for token {token[:8]}... already generated, skipping")
            return PipelineResult(message=ALREADY_GENERATED_MESSAGE)

        # Step 4: Generate assessment
        logger.info(f"Generating {self.lead_magnet} for {form.company}")
        assessment = await self.generator.generate(form)

        # Step 5: Advance throttle timestamp before delivery
        now = self.clock()
        claimed = await self.store.claim_generation(
            email=form.email,
            verification_token=token,
            lead_magnet=self.lead_magnet,
            generated_at=now,
            window=self.window,
        )
        if not claimed:
            return PipelineResult(message=ALREADY_GENERATED_MESSAGE)

        # Step 6: Render PDF
        document_id = await self.renderer.create_document(build_render_payload(form, assessment, now))
        download_url = await self.renderer.wait_for_download_url(document_id)

        # Step 7: Email the link
        await self.notifier.send_assessment(
            to_email=form.email,
            name=form.name,
            company=form.company,
            download_url=download_url,
        )

        logger.info(f"Pipeline completed for {form.email} (document {document_id})")
        return PipelineResult(message=SUCCESS_MESSAGE, download_url=download_url)

    async def _check_bot(self, honeypot: Any, recaptcha_token: str, remote_ip: str | None):
        if honeypot:
            logger.warning(f"Honeypot filled by {remote_ip or 'unknown client'}")
            raise BotDetectedError("Bot detected.")

        if not await self.captcha.verify(recaptcha_token, remote_ip):
            raise BotDetectedError("Bot detected, please try again.")

    async def _recently_generated(self, verification_token: str) -> bool:
        record = await self.store.get_by_token(verification_token)
        if record is None:
            return False

        try:
            last_generated = record.generated_at(self.lead_magnet)
        except ValueError:
            logger.warning(
                f"Unparsable {self.lead_magnet} timestamp for {record.email}: "
                f"{record.lead_magnet_generated.get(self.lead_magnet)!r}"
            )
            return False
        if last_generated is None:
            return False

        return self.clock() - last_generated <= self.window


def build_pipeline(settings: Settings) -> AssessmentPipeline:
    """Wire the production collaborators from settings."""
    return AssessmentPipeline(
        captcha=RecaptchaClient(settings),
        store=PostgresSubscriberStore(get_session_factory()),
        generator=AssessmentGenerator(
            AIClient(settings),
            max_tokens=settings.assessment_max_tokens,
            temperature=settings.assessment_temperature,
        ),
        renderer=PDFMonkeyClient(settings),
        notifier=SMTPMailer(settings),
        lead_magnet=settings.lead_magnet_name,
        window=timedelta(hours=settings.regeneration_window_hours),
    )


# Singleton instance
_pipeline: AssessmentPipeline | None = None


def get_pipeline() -> AssessmentPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(get_settings())
    return _pipeline


async def close_pipeline():
    global _pipeline
    if _pipeline is None:
        return
    for client in (_pipeline.captcha, _pipeline.renderer):
        if hasattr(client, "aclose"):
            await client.aclose()
    _pipeline = None
