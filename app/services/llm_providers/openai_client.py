import time
from typing import Any

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)

from app.config import settings
from app.exceptions import UpstreamError
from app.services.llm_interface import LLMInterface
from app.utils.logger import setup_logger

logger = setup_logger("openai_client")


def map_openai_error(e: Exception, operation: str) -> UpstreamError:
    """Translate an OpenAI SDK exception into the typed upstream failure."""
    if isinstance(e, AuthenticationError | PermissionDeniedError):
        return UpstreamError(f"{operation}: upstream authentication failed", kind="auth")
    if isinstance(e, RateLimitError):
        return UpstreamError(f"{operation}: upstream rate limit reached", kind="rate_limit")
    # APITimeoutError subclasses APIConnectionError, so it is checked first
    if isinstance(e, APITimeoutError):
        return UpstreamError(f"{operation}: upstream request timed out", kind="timeout")
    if isinstance(e, APIConnectionError):
        return UpstreamError(f"{operation}: upstream unreachable", kind="failure")
    return UpstreamError(f"{operation}: upstream call failed ({type(e).__name__})", kind="failure")


class OpenAIClient(LLMInterface):
    """
    LLM Client implementation for OpenAI API.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        default_model: str = settings.openai_extraction_model,
        transcription_model: str = settings.openai_transcription_model,
        timeout: float = settings.llm_timeout_extract,
    ):
        if not api_key:
            logger.error("OpenAI API key is required but not provided")
            raise ValueError("OpenAI API key is required.")

        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.transcription_model = transcription_model

        logger.debug(
            f"Initializing OpenAI client with model: {default_model}, base_url: {base_url or 'Default'}"
        )

        # Retries are left to the caller: a rate limit surfaces as 429 instead
        # of being absorbed by the SDK's own backoff.
        client_args: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": timeout,
            "max_retries": 0,
        }
        if self.base_url:
            client_args["base_url"] = self.base_url

        self._client = AsyncOpenAI(**client_args)
        logger.info(
            f"OpenAI client initialized. Base URL: {self.base_url or 'Default'}, "
            f"Default Model: {self.default_model}, Transcription Model: {self.transcription_model}"
        )

    async def generate_chat_completion(
        self,
        messages: list[dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        if not messages:
            logger.error("Empty messages list provided to generate_chat_completion")
            raise ValueError("Messages list cannot be empty")

        effective_model = kwargs.pop("model", None) or self.default_model
        request_params: dict[str, Any] = {
            "model": effective_model,
            "messages": messages,
            "temperature": temperature,
            **kwargs,
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens

        response_format = kwargs.get("response_format")
        if isinstance(response_format, dict) and response_format.get("type") == "json_schema":
            schema_name = response_format.get("json_schema", {}).get("name")
            logger.debug(f"OpenAI client: json_schema '{schema_name}' requested for {effective_model}")

        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**request_params)
        except OpenAIError as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"OpenAI API error during chat completion for model {effective_model} after {duration:.4f}s: "
                f"{type(e).__name__}: {e}"
            )
            raise

        response_dict = response.model_dump()
        duration = time.perf_counter() - start_time

        content_length = 0
        if response_dict.get("choices"):
            content = response_dict["choices"][0].get("message", {}).get("content") or ""
            content_length = len(content)
        else:
            logger.warning("No choices found in OpenAI chat completion response")

        usage = response_dict.get("usage") or {}
        logger.info(
            f"OpenAI chat completion for model {effective_model} completed in {duration:.4f}s. "
            f"Input: {len(messages)} messages, output: {content_length} chars, "
            f"tokens: {usage.get('prompt_tokens')}/{usage.get('completion_tokens')}"
        )
        if duration > 30:
            logger.warning(f"Slow chat completion response: {duration:.4f}s")

        return response_dict

    async def transcribe_audio(
        self,
        audio_bytes: bytes,
        filename: str,
        *,
        language: str | None = None,
        **kwargs: Any,
    ) -> str:
        start_time = time.perf_counter()
        request_params: dict[str, Any] = {
            "model": self.transcription_model,
            "file": (filename, audio_bytes),
            "response_format": "json",
            **kwargs,
        }
        if language:
            request_params["language"] = language

        try:
            response = await self._client.audio.transcriptions.create(**request_params)
        except OpenAIError as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"OpenAI transcription error for {filename} ({len(audio_bytes)} bytes) after {duration:.4f}s: "
                f"{type(e).__name__}: {e}"
            )
            raise

        text = getattr(response, "text", "") or ""
        duration = time.perf_counter() - start_time
        logger.info(
            f"OpenAI transcription of {filename} ({len(audio_bytes)} bytes) completed in {duration:.4f}s, "
            f"transcript: {len(text)} chars"
        )
        return text

    async def close(self):
        logger.info("Closing OpenAI client.")
        await self._client.close()
