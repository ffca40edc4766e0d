"""
Abstract interface for Large Language Model (LLM) services.

Defines the calls the capture pipeline makes against a model provider:
schema-constrained chat completions and speech-to-text.
"""

from abc import ABC, abstractmethod
from typing import Any


class LLMInterface(ABC):
    """
    Abstract Base Class for Large Language Model services.
    """

    @abstractmethod
    async def generate_chat_completion(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Generates a chat completion based on a list of messages.

        Message content may be a string or a list of content parts (text and
        image_url), so vision requests go through the same call. Returns the
        completion as a plain dict including 'usage'.
        """

    @abstractmethod
    async def transcribe_audio(
        self,
        audio_bytes: bytes,
        filename: str,
        *,
        language: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Transcribes an audio clip and returns the raw transcript text."""

    async def close(self):
        """
        Optional method to close any underlying connections or clients.
        Providers that don't need explicit closing can have an empty implementation.
        """
        return
