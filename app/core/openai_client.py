"""OpenAI client for content generation (api_key and timeouts from config)."""
from openai import OpenAI

from app.core.config import Settings


def create_openai_client(cfg: Settings) -> OpenAI:
    """Build the OpenAI client used by the content generator. Retries are handled by the generator, not the SDK.
    Why available: The entry point creates one client at startup and injects it, so tests can swap in a fake."""
    return OpenAI(api_key=cfg.openai_api_key or None, max_retries=0, timeout=120.0)
