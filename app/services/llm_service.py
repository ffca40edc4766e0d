"""
LLM Service Manager - lifecycle of the process-wide model client.

Initializes the OpenAI client from settings at startup, hands it out on demand,
and closes it on shutdown.
"""

from app.config import settings
from app.services.llm_interface import LLMInterface
from app.services.llm_providers.openai_client import OpenAIClient
from app.utils.logger import setup_logger

logger = setup_logger("llm_service_manager")

# Client instances cache
_initialized_clients: dict[str, LLMInterface] = {}


def _build_openai_client() -> LLMInterface | None:
    if not settings.openai_api_key:
        logger.warning(
            "OpenAI API key not configured. Extraction and transcription are unavailable."
        )
        return None

    logger.debug(
        f"OpenAI config - base_url: {settings.openai_base_url}, "
        f"model: {settings.openai_extraction_model}, api_key: {settings.openai_api_key[:5]}..."
    )
    try:
        return OpenAIClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            default_model=settings.openai_extraction_model,
            transcription_model=settings.openai_transcription_model,
            timeout=settings.llm_timeout_extract,
        )
    except ValueError as ve:
        logger.error(f"Configuration error initializing OpenAI client: {ve}")
        return None


def initialize_all_llm_clients():
    """Initialize LLM clients based on available configuration."""
    if "openai" in _initialized_clients:
        logger.debug("openai client already initialized, skipping")
        return

    client = _build_openai_client()
    if client is not None:
        _initialized_clients["openai"] = client
        logger.info("Openai client successfully initialized.")


async def close_all_llm_clients():
    """Close all initialized LLM clients."""
    if not _initialized_clients:
        logger.info("No LLM clients to close.")
        return

    for provider_name, client_instance in _initialized_clients.items():
        try:
            await client_instance.close()
            logger.info(f"{provider_name.capitalize()} client closed successfully.")
        except Exception as e:
            logger.error(f"Error closing {provider_name} client: {e}", exc_info=True)

    _initialized_clients.clear()


def get_llm_client(provider_name: str = "openai") -> LLMInterface | None:
    """
    Get an initialized LLM client for the specified provider.

    Returns None if the provider is not available or not properly configured.
    """
    provider_name = provider_name.lower()
    client = _initialized_clients.get(provider_name)
    if client:
        return client

    if provider_name != "openai":
        logger.error(f"Unknown provider name: {provider_name}. Available providers: ['openai']")
        return None

    logger.info("Openai client not pre-initialized. Attempting on-demand initialization.")
    client = _build_openai_client()
    if client is not None:
        _initialized_clients[provider_name] = client
    return client
