"""
services/llm.py — Async chat-completion and speech-to-text client.

Provider: OpenRouter or OpenAI (auto-detected from env vars), both through
openai.AsyncOpenAI.  Transcription always goes to OpenAI Whisper.
"""

import os
from typing import List, Optional

from config import Config
from logging_config import get_logger

logger = get_logger(__name__)

# Shorthand model IDs → OpenRouter paths
_OR_ALIASES: dict = {
    "gpt-4":               "openai/gpt-4",
    "gpt-4-turbo-preview": "openai/gpt-4-turbo-preview",
    "gpt-4o":              "openai/gpt-4o",
    "gpt-4o-mini":         "openai/gpt-4o-mini",
}


def _detect_provider() -> str:
    p = os.getenv("AI_PROVIDER", "").lower()
    if p in ("openrouter", "openai"):
        return p
    if os.getenv("OPENROUTER_API_KEY") and not os.getenv("OPENAI_API_KEY"):
        return "openrouter"
    return "openai"


class LLMError(Exception):
    """Raised when a provider is not configured."""


class LLMService:
    """Async LLM calls.  Instantiate once as a module-level singleton."""

    def __init__(self):
        self._provider = _detect_provider()
        self._chat_client = None    # openai.AsyncOpenAI — lazy init
        self._audio_client = None   # openai.AsyncOpenAI bound to api.openai.com
        logger.info("llm.provider", provider=self._provider)

    def resolve_model(self, model_id: Optional[str]) -> str:
        model_id = (model_id or "").strip() or Config.SUMMARY_MODEL
        if self._provider == "openrouter" and "/" not in model_id:
            return _OR_ALIASES.get(model_id, model_id)
        return model_id

    async def complete(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.3,
        json_mode: bool = False,
    ) -> str:
        """Send a chat request and return the first choice's text ("" if none)."""
        resolved = self.resolve_model(model)
        kwargs = {"model": resolved, "messages": messages, "temperature": temperature}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        resp = await self._get_chat_client().chat.completions.create(**kwargs)
        content = resp.choices[0].message.content if resp.choices else None
        logger.debug("llm.completion", model=resolved, chars=len(content or ""))
        return content or ""

    async def transcribe(self, data: bytes, filename: str, content_type: str) -> str:
        """Speech-to-text for an in-memory audio file."""
        client = self._get_audio_client()
        transcription = await client.audio.transcriptions.create(
            model=Config.TRANSCRIPTION_MODEL,
            file=(filename, data, content_type),
        )
        return transcription.text or ""

    def _get_chat_client(self):
        if self._chat_client is None:
            import openai

            if self._provider == "openrouter":
                api_key = os.getenv("OPENROUTER_API_KEY")
                if not api_key:
                    raise LLMError("OPENROUTER_API_KEY is not set")
                self._chat_client = openai.AsyncOpenAI(
                    base_url="https://openrouter.ai/api/v1",
                    api_key=api_key,
                )
            else:
                self._chat_client = self._get_audio_client()
        return self._chat_client

    def _get_audio_client(self):
        if self._audio_client is None:
            import openai

            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise LLMError("OPENAI_API_KEY is not set")
            self._audio_client = openai.AsyncOpenAI(api_key=api_key)
        return self._audio_client
