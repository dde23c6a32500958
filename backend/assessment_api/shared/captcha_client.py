import logging

import httpx

from assessment_api.config import Settings
from assessment_api.shared.exceptions import CaptchaVerificationError
from assessment_api.shared.interfaces import CaptchaVerifier

logger = logging.getLogger(__name__)


class RecaptchaClient(CaptchaVerifier):
    """Google reCAPTCHA siteverify client."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.secret_key = settings.recaptcha_secret_key
        self.verify_url = settings.recaptcha_verify_url
        self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            response = await self.http.post(self.verify_url, data=data)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"reCAPTCHA verification request failed: {e}")
            raise CaptchaVerificationError("CAPTCHA verification failed", detail=str(e))

        success = result.get("success") is True
        if not success:
            logger.info(f"reCAPTCHA rejected token: {result.get('error-codes', [])}")
        return success

    async def aclose(self):
        await self.http.aclose()
