import os
from typing import Optional

import openai
from openai import OpenAI

from fieldnotes.core.errors import DependencyUnavailable
from fieldnotes.core.interfaces.ports import ILLMProvider


def translate_openai_error(e: Exception, action: str) -> DependencyUnavailable:
    if isinstance(e, openai.AuthenticationError):
        kind = DependencyUnavailable.AUTHENTICATION
    elif isinstance(e, openai.RateLimitError):
        kind = DependencyUnavailable.RATE_LIMIT
    elif isinstance(e, openai.APIConnectionError):
        kind = DependencyUnavailable.NETWORK
    else:
        kind = DependencyUnavailable.UNKNOWN
    return DependencyUnavailable(f"OpenAI {action} failed: {e}", kind)


class OpenAIProvider(ILLMProvider):
    def __init__(self, api_key: str = None, model_name: str = None, temperature: float = 0.3):
        self.model_name = model_name or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.temperature = temperature

        if not self.api_key or not self.api_key.strip():
            raise ValueError("OpenAI API Key is required. Set OPENAI_API_KEY env var.")

        self.client = OpenAI(api_key=self.api_key)

    def generate(self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.temperature,
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e, "completion") from e

        return response.choices[0].message.content or ""
