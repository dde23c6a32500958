"""
PDFMonkey render-job client.

A job is created with a template id and payload, then polled with
exponential backoff until the service reports ``success`` (download URL
available), ``failure``, or the poll budget runs out.
"""

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from assessment_api.config import Settings
from assessment_api.shared.exceptions import RenderError, RenderTimeoutError
from assessment_api.shared.interfaces import DocumentRenderer, RenderedDocument

logger = logging.getLogger(__name__)

SUCCESS_STATUS = "success"
FAILURE_STATUS = "failure"


def _still_rendering(document: RenderedDocument) -> bool:
    return document.status != FAILURE_STATUS and not (
        document.status == SUCCESS_STATUS and document.download_url
    )


class PDFMonkeyClient(DocumentRenderer):
    """Document-rendering service client."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.api_url = settings.pdfmonkey_api_url.rstrip("/")
        self.template_id = settings.pdfmonkey_template_id
        self.poll_initial_wait = settings.render_poll_initial_wait
        self.poll_max_wait = settings.render_poll_max_wait
        self.timeout_seconds = settings.render_timeout_seconds
        self.max_attempts = settings.render_max_attempts
        self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.headers = {
            "Authorization": f"Bearer {settings.pdfmonkey_api_key}",
            "Content-Type": "application/json",
        }

    async def create_document(self, payload: dict) -> str:
        body = {
            "document": {
                "document_template_id": self.template_id,
                "payload": payload,
                "status": "pending",
            }
        }
        try:
            response = await self.http.post(self.api_url, json=body, headers=self.headers)
            response.raise_for_status()
            document_id = response.json()["document"]["id"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"PDFMonkey document creation failed: {e}")
            raise RenderError("Render job submission failed", detail=str(e))

        logger.info(f"Submitted render job {document_id}")
        return str(document_id)

    async def fetch_document(self, document_id: str) -> RenderedDocument:
        try:
            response = await self.http.get(f"{self.api_url}/{document_id}", headers=self.headers)
            response.raise_for_status()
            document = response.json()["document"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"PDFMonkey fetch failed for {document_id}: {e}")
            raise RenderError("Render job lookup failed", detail=str(e))

        return RenderedDocument(
            id=str(document.get("id", document_id)),
            status=document.get("status") or "pending",
            download_url=document.get("download_url"),
        )

    async def wait_for_download_url(self, document_id: str) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_result(_still_rendering),
            stop=stop_after_delay(self.timeout_seconds) | stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.poll_initial_wait, max=self.poll_max_wait),
        )
        try:
            document = await retrying(self.fetch_document, document_id)
        except RetryError:
            logger.error(f"Render job {document_id} did not finish within {self.timeout_seconds}s")
            raise RenderTimeoutError(
                "Render timed out",
                detail=f"document {document_id} not ready after {self.max_attempts} attempts",
            )

        if document.status == FAILURE_STATUS:
            raise RenderError("Render job failed", detail=f"document {document_id} reported failure")

        logger.info(f"Render job {document_id} ready")
        return document.download_url

    async def aclose(self):
        await self.http.aclose()
