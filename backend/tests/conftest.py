import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from assessment_api.assessments.generator import AssessmentGenerator
from assessment_api.main import app
from assessment_api.orchestrator.pipeline import AssessmentPipeline, get_pipeline
from assessment_api.shared.exceptions import MailDeliveryError, RenderTimeoutError
from assessment_api.shared.interfaces import (
    CaptchaVerifier,
    CompletionProvider,
    DocumentRenderer,
    Notifier,
    SubscriberRecord,
    SubscriberStore,
    format_timestamp,
)
from assessment_api.shared.rate_limit import limiter

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
VERIFICATION_TOKEN = "tok-4f2a9c1e7b"

ASSESSMENT = {
    "company": "Acme &amp; Co",
    "company_size": "11-50",
    "it_challenge": "cybersecurity-risks",
    "assessmentSections": [
        {"title": "Overview", "content": "Acme is a growing firm with a small IT team."},
        {"title": "Challenge Analysis", "content": "Phishing and unpatched laptops are the main exposure."},
        {
            "title": "Recommendations",
            "content": [
                {"step": 1, "action": "Enforce MFA on all accounts."},
                {"step": 2, "action": "Roll out managed endpoint patching."},
                {"step": 3, "action": "Run quarterly phishing training."},
            ],
        },
        {"title": "Next Steps", "content": "Book a consultation to plan the rollout."},
    ],
}
ASSESSMENT_JSON = json.dumps(ASSESSMENT)


def make_body(form_overrides: dict | None = None, **overrides) -> dict:
    form = {
        "name": "Jane Doe",
        "email": "Jane.Doe@acme-corp.com",
        "company": "Acme & Co",
        "company_size": "11-50",
        "it_challenge": "cybersecurity-risks",
        "it_setup": "Office 365, a NAS and five laptops",
        "consent": True,
    }
    form.update(form_overrides or {})
    body = {
        "formData": form,
        "verificationToken": VERIFICATION_TOKEN,
        "honeypot": "",
        "recaptchaToken": "captcha-response",
    }
    body.update(overrides)
    return body


class FakeCaptcha(CaptchaVerifier):
    def __init__(self, success: bool = True):
        self.success = success
        self.calls = []

    async def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return self.success


class FakeCompletion(CompletionProvider):
    def __init__(self, output: str = ASSESSMENT_JSON):
        self.output = output
        self.calls = []

    async def complete(self, system_prompt, user_prompt, max_tokens, temperature):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        return self.output


class FakeStore(SubscriberStore):
    def __init__(self):
        self.records: list[SubscriberRecord] = []
        self.lookups = []
        self.claims = []
        self.force_claim_result: bool | None = None

    def add(self, email, verification_token, **stamps):
        record = SubscriberRecord(email, verification_token, dict(stamps))
        self.records.append(record)
        return record

    async def get_by_token(self, verification_token):
        self.lookups.append(verification_token)
        for record in self.records:
            if record.verification_token == verification_token:
                return record
        return None

    async def claim_generation(self, email, verification_token, lead_magnet, generated_at, window):
        self.claims.append({
            "email": email,
            "verification_token": verification_token,
            "lead_magnet": lead_magnet,
            "generated_at": generated_at,
        })
        if self.force_claim_result is not None:
            return self.force_claim_result

        record = next((r for r in self.records if r.email == email), None)
        if record is None:
            record = self.add(email, verification_token)
        try:
            stored = record.generated_at(lead_magnet)
        except ValueError:
            stored = None
        if stored is not None and generated_at - stored <= window:
            return False
        record.verification_token = verification_token
        record.lead_magnet_generated[lead_magnet] = format_timestamp(generated_at)
        return True


class FakeRenderer(DocumentRenderer):
    def __init__(self, download_url: str = "https://files.pdfmonkey.io/doc-1.pdf"):
        self.download_url = download_url
        self.payloads = []
        self.fetched = []
        self.time_out = False

    async def create_document(self, payload):
        self.payloads.append(payload)
        return f"doc-{len(self.payloads)}"

    async def wait_for_download_url(self, document_id):
        self.fetched.append(document_id)
        if self.time_out:
            raise RenderTimeoutError("Render timed out")
        return self.download_url


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_assessment(self, to_email, name, company, download_url):
        if self.fail:
            raise MailDeliveryError("Email delivery failed", detail="550 mailbox unavailable")
        self.sent.append({"to": to_email, "name": name, "company": company, "url": download_url})


class Harness:
    """Pipeline wired to in-memory fakes with a fixed clock."""

    def __init__(self):
        self.captcha = FakeCaptcha()
        self.completion = FakeCompletion()
        self.store = FakeStore()
        self.renderer = FakeRenderer()
        self.notifier = FakeNotifier()
        self.pipeline = AssessmentPipeline(
            captcha=self.captcha,
            store=self.store,
            generator=AssessmentGenerator(self.completion, max_tokens=1000, temperature=0.5),
            renderer=self.renderer,
            notifier=self.notifier,
            lead_magnet="IT Assessment",
            window=timedelta(hours=48),
            clock=lambda: NOW,
        )

    def stamp_hours_ago(self, hours: float) -> str:
        return format_timestamp(NOW - timedelta(hours=hours))


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def client(harness):
    app.dependency_overrides[get_pipeline] = lambda: harness.pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()
