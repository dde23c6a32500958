import asyncio
import html
import logging
import smtplib
import ssl
from email.message import EmailMessage

from assessment_api.config import Settings
from assessment_api.shared.exceptions import MailDeliveryError
from assessment_api.shared.interfaces import Notifier

logger = logging.getLogger(__name__)

ASSESSMENT_EMAIL_TEMPLATE = """\
<p>Hi {name},</p>
<p>Attached is your IT assessment for {company}. View it online <a href="{download_url}" target="_blank">here</a> (expires in 24 hours).</p>
<p>Schedule a free consultation: <a href="{scheduling_url}">Book Now</a></p>
"""


def render_assessment_email(name: str, company: str, download_url: str, scheduling_url: str) -> str:
    """Build the HTML body. Name and company arrive already HTML-escaped."""
    return ASSESSMENT_EMAIL_TEMPLATE.format(
        name=name,
        company=company,
        download_url=html.escape(download_url, quote=True),
        scheduling_url=html.escape(scheduling_url, quote=True),
    )


class SMTPMailer(Notifier):
    """Authenticated SMTP relay sender."""

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.use_ssl = settings.smtp_use_ssl
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.timeout = settings.smtp_timeout_seconds
        self.sender = settings.sender_address
        self.subject = settings.mail_subject
        self.scheduling_url = settings.scheduling_url

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if not self.use_ssl:
                server.starttls(context=context)
            if self.user and self.password:
                server.login(self.user, self.password)
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def build_message(self, to_email: str, name: str, company: str, download_url: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = self.subject
        message["From"] = self.sender
        message["To"] = to_email
        body = render_assessment_email(name, company, download_url, self.scheduling_url)
        message.set_content(body, subtype="html")
        return message

    def _send(self, message: EmailMessage) -> None:
        with self._connect() as server:
            server.send_message(message)

    async def send_assessment(self, to_email: str, name: str, company: str, download_url: str) -> None:
        message = self.build_message(to_email, name, company, download_url)
        try:
            await asyncio.to_thread(self._send, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {to_email} failed: {e}")
            raise MailDeliveryError("Email delivery failed", detail=str(e))
        logger.info(f"Assessment email sent to {to_email}")

    def verify(self) -> bool:
        """Check that the relay accepts our credentials."""
        try:
            with self._connect() as server:
                server.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP verification failed: {e}")
            return False
        logger.info(f"SMTP relay {self.host}:{self.port} ready to send emails")
        return True
