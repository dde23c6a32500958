from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone


@dataclass
class SubscriberRecord:
    """Subscriber row as seen by the pipeline."""

    email: str | None
    verification_token: str | None = None
    lead_magnet_generated: dict[str, str] = field(default_factory=dict)

    def generated_at(self, lead_magnet: str) -> datetime | None:
        """Return the last generation time for a lead magnet, in UTC."""
        raw = self.lead_magnet_generated.get(lead_magnet)
        if not raw:
            return None
        # fromisoformat accepts the trailing "Z" written by JavaScript clients
        stamp = datetime.fromisoformat(str(raw))
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return stamp.astimezone(timezone.utc)


@dataclass
class RenderedDocument:
    """Render job as reported by the rendering service."""

    id: str
    status: str
    download_url: str | None = None


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CaptchaVerifier(ABC):
    @abstractmethod
    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        """Return True when the CAPTCHA response token is valid."""
        pass


class CompletionProvider(ABC):
    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the generated text for a system + user prompt pair."""
        pass


class SubscriberStore(ABC):
    @abstractmethod
    async def get_by_token(self, verification_token: str) -> SubscriberRecord | None:
        """Look up a subscriber by verification token."""
        pass

    @abstractmethod
    async def claim_generation(
        self,
        email: str,
        verification_token: str,
        lead_magnet: str,
        generated_at: datetime,
        window: timedelta,
    ) -> bool:
        """Upsert the generation timestamp keyed by email.

        The write only applies when no timestamp is stored for the lead magnet
        or the stored one is older than ``window``. Returns False when another
        request already holds the window.
        """
        pass


class DocumentRenderer(ABC):
    @abstractmethod
    async def create_document(self, payload: dict) -> str:
        """Submit a render job and return its identifier."""
        pass

    @abstractmethod
    async def wait_for_download_url(self, document_id: str) -> str:
        """Block until the job has a download URL and return it."""
        pass


class Notifier(ABC):
    @abstractmethod
    async def send_assessment(self, to_email: str, name: str, company: str, download_url: str) -> None:
        """Email the requester a link to their rendered assessment."""
        pass
