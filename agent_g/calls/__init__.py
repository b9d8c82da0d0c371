from .base import BaseCallsProvider
from .factory import get_calls_provider
from .providers import MockCallsProvider, TelegramCallsProvider, TwilioCallsProvider

__all__ = [
    "BaseCallsProvider",
    "MockCallsProvider",
    "TelegramCallsProvider",
    "TwilioCallsProvider",
    "get_calls_provider",
]
