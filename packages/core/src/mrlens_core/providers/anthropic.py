from __future__ import annotations

from mrlens_core.errors import RemoteCallError
from mrlens_core.providers.base import BaseReviewer, retry_after_seconds


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    SOURCE = "anthropic"
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, **kwargs):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'mrlens[anthropic]'"
            )
        super().__init__(**kwargs)
        # max_retries=0: call_with_retry owns the retry policy.
        self.client = AsyncAnthropic(api_key=api_key, max_retries=0, timeout=self.timeout)

    async def _call_api(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic import APIStatusError
        from anthropic.types import TextBlock

        try:
            response = await self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=self.TEMPERATURE,
                max_tokens=self.max_tokens,
            )
        except APIStatusError as e:
            raise RemoteCallError(
                e.status_code, e.body, retry_after=retry_after_seconds(e.response.headers), source=self.SOURCE
            ) from e
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        tokens = response.usage.input_tokens + response.usage.output_tokens if response.usage else 0
        return "".join(text_blocks).strip(), tokens
