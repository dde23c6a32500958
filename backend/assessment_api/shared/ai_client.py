import logging

import anthropic

from assessment_api.config import Settings
from assessment_api.shared.exceptions import AIClientError
from assessment_api.shared.interfaces import CompletionProvider

logger = logging.getLogger(__name__)


class AIClient(CompletionProvider):
    """Anthropic Messages API wrapper with usage tracking."""

    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None):
        self.client = client or anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.http_timeout_seconds,
            max_retries=0,
        )
        self.model = settings.anthropic_model
        self.total_input_tokens = 0
        self.total_output_tokens = 0

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.5,
    ) -> str:
        """Generate a text response from Claude."""
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise AIClientError("Completion API call failed", detail=str(e))

        self._track_usage(response.usage)
        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise AIClientError("No text returned from Claude")
        return "".join(text_blocks)

    def _track_usage(self, usage):
        self.total_input_tokens += usage.input_tokens
        self.total_output_tokens += usage.output_tokens
        logger.debug(
            f"Token usage - input: {usage.input_tokens}, output: {usage.output_tokens}, "
            f"total_input: {self.total_input_tokens}, total_output: {self.total_output_tokens}"
        )

    def get_usage_stats(self) -> dict[str, int]:
        return {
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
        }
