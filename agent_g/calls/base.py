"""
Base calls provider interface
Defines the unified interface for all telephony/voice backends
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..models.calls import (
    CallDirection,
    EndCallResult,
    OutboundCallInput,
    ProviderCallResult,
    StartSessionInput,
    WebhookResult,
)


class BaseCallsProvider(ABC):
    """
    Abstract base class for calls providers.

    Providers report failures through ``ok=False`` on their result objects
    rather than raising, so webhook handlers stay uniform across backends.
    """

    name: str = "base"
    channel: str = "phone"

    def make_call_id(self, direction: CallDirection) -> str:
        return f"{self.name}-{direction.value}-{uuid.uuid4().hex[:12]}"

    @abstractmethod
    async def start_inbound_session(self, data: StartSessionInput) -> ProviderCallResult:
        """
        Open a session for a user who is calling in.

        Args:
            data: Who is calling, over which channel and in which mode

        Returns:
            Provider call id, session status and provider metadata
        """
        pass

    @abstractmethod
    async def start_outbound_call(self, data: OutboundCallInput) -> ProviderCallResult:
        """
        Place a call to the user, speaking ``data.script``.

        Returns:
            Provider call id and the initial call status
        """
        pass

    @abstractmethod
    async def on_webhook_event(self, payload: Dict[str, Any]) -> WebhookResult:
        """
        Normalize a provider webhook body.

        Args:
            payload: Raw JSON or form body posted by the provider

        Returns:
            ``ok``, the provider call id (if any), a status string and metadata
        """
        pass

    @abstractmethod
    async def end_call(self, call_id: str) -> EndCallResult:
        """Hang up ``call_id``."""
        pass
