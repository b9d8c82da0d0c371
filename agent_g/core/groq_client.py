import logging
from typing import Optional
from groq import Groq
from ..config import GroqConfig

logger = logging.getLogger(__name__)

def get_groq_client(config: GroqConfig) -> Optional[Groq]:
    """
    Attempts to return a Groq client.
    Returns None if:
    - Groq is disabled (USE_GROQ is not true).
    - The API key is missing.
    - Initialization fails for any reason.

    This function never raises; callers fall back to keyword planning.
    """
    if not config.enabled:
        return None

    if not config.api_key:
        logger.warning("USE_GROQ is true, but GROQ_API_KEY is missing. Falling back to keyword planning.")
        return None

    try:
        return Groq(api_key=config.api_key)
    except Exception as e:
        logger.error(f"Failed to initialize Groq client: {e}. Falling back to keyword planning.")
        return None
