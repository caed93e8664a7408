from typing import Optional

from anthropic import AsyncAnthropic
from .base import LLMProvider
from tenacity import retry, stop_after_attempt, wait_exponential

class AnthropicProvider(LLMProvider):
    """Anthropic messages provider with automatic retries"""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-5"):
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(min=1, max=10), reraise=True)
    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        **kwargs
    ) -> str:
        """Generate completion via Anthropic API"""
        if json_mode:
            # No native JSON mode; the instruction goes into the system prompt
            suffix = "Respond with a single valid JSON object and nothing else."
            system = f"{system}\n\n{suffix}" if system else suffix
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=1024,
            messages=[{"role": "user", "content": prompt}],
            **kwargs
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
