from __future__ import annotations

try:
    from openai import APIStatusError as _APIStatusError
    from openai import AsyncOpenAI as _AsyncOpenAI
except ImportError:
    _AsyncOpenAI = None  # type: ignore[assignment,misc]
    _APIStatusError = None  # type: ignore[assignment,misc]

from mrlens_core.errors import RemoteCallError
from mrlens_core.providers.base import BaseReviewer, retry_after_seconds


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    SOURCE = "openai"
    # Low temperature keeps the JSON structure and the findings stable
    # between runs on the same merge request.
    TEMPERATURE = 0.1

    def __init__(self, api_key: str, **kwargs):
        if _AsyncOpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'mrlens[openai]'"
            )
        super().__init__(**kwargs)
        # max_retries=0: call_with_retry owns the retry policy.
        self.client = _AsyncOpenAI(api_key=api_key, max_retries=0, timeout=self.timeout)

    async def _call_api(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.TEMPERATURE,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except _APIStatusError as e:
            raise RemoteCallError(
                e.status_code, e.body, retry_after=retry_after_seconds(e.response.headers), source=self.SOURCE
            ) from e
        tokens = response.usage.total_tokens if response.usage else 0
        return response.choices[0].message.content or "", tokens
