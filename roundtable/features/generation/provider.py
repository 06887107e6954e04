"""Text generation backends.

The app holds one TextGenerator on `app.state.generator`; handlers get it
through `get_text_generator`. Tests swap in a stub.
"""

from typing import Optional, Protocol

import groq
from fastapi import Request

from roundtable.core.config import Settings, settings as default_settings


class TextGenerationError(RuntimeError):
    """The generation backend failed or returned no text."""


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class GroqTextGenerator:
    """Single prompt-in / text-out chat completion. No streaming."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "llama-3.1-8b-instant",
        temperature: float = 0.8,
        max_tokens: int = 1024,
        client=None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._client = client

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "GroqTextGenerator":
        cfg = settings_obj or default_settings
        return cls(
            cfg.GROQ_API_KEY,
            model=cfg.GENERATION_MODEL,
            temperature=cfg.GENERATION_TEMPERATURE,
            max_tokens=cfg.GENERATION_MAX_TOKENS,
        )

    @property
    def client(self):
        if self._client is None:
            if not self._api_key:
                raise TextGenerationError("GROQ_API_KEY is not configured")
            self._client = groq.Groq(api_key=self._api_key)
        return self._client

    def generate(self, prompt: str) -> str:
        completion = self.client.chat.completions.create(
            messages=[{"role": "user", "content": prompt}],
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=False,
        )
        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise TextGenerationError("Generation returned no text")
        return text


def get_text_generator(request: Request) -> TextGenerator:
    return request.app.state.generator
