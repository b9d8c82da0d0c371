import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional
import httpx
from ..config import WhatsAppConfig
from ..errors import ChannelNotConfiguredError
from ..models.channels import ChannelType, InboundMessage

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"


def parse_messages(payload: Dict[str, Any]) -> List[InboundMessage]:
    """Flattens a Cloud API webhook body into its text messages."""
    messages = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for item in value.get("messages") or []:
                sender = item.get("from")
                if not sender or item.get("type") != "text":
                    continue
                messages.append(InboundMessage(
                    channel=ChannelType.WHATSAPP,
                    external_id=str(sender),
                    text=(item.get("text") or {}).get("body", ""),
                ))
    return messages


class WhatsAppClient:
    def __init__(self, config: WhatsAppConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    @property
    def can_send(self) -> bool:
        return bool(self.config.access_token and self.config.phone_number_id)

    def verify_subscription(self, mode: Optional[str], token: Optional[str]) -> bool:
        return mode == "subscribe" and bool(self.config.verify_token) and token == self.config.verify_token

    def verify_signature(self, body: bytes, header: Optional[str]) -> bool:
        if not self.config.app_secret or not header or not header.startswith("sha256="):
            return False
        expected = hmac.new(self.config.app_secret.encode(), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, header[len("sha256="):])

    async def send_text(self, to: str, text: str) -> bool:
        if not self.can_send:
            raise ChannelNotConfiguredError("WhatsApp access token or phone number id missing")

        url = f"{self.config.api_base}/{self.config.phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text[:4096]},
        }
        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"[WhatsApp] send to {to} failed: {e}")
            return False

        logger.info(f"[WhatsApp] send to {to} -> {response.status_code}")
        return response.is_success
