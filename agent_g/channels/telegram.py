import logging
from typing import Any, Dict, Optional
import httpx
from ..config import TelegramConfig
from ..errors import ChannelNotConfiguredError
from ..models.channels import ChannelType, InboundMessage

logger = logging.getLogger(__name__)

SECRET_HEADER = "x-telegram-bot-api-secret-token"


def parse_update(update: Dict[str, Any]) -> Optional[InboundMessage]:
    """Extracts the chat id and text of a Telegram update; None for updates without a message."""
    message = update.get("message") or update.get("edited_message")
    if not isinstance(message, dict):
        return None

    chat = message.get("chat") or {}
    chat_id = chat.get("id")
    if chat_id is None:
        return None

    return InboundMessage(
        channel=ChannelType.TELEGRAM,
        external_id=str(chat_id),
        text=message.get("text") or message.get("caption") or "",
        voice_url=(message.get("voice") or {}).get("file_id"),
    )


class TelegramClient:
    def __init__(self, config: TelegramConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def verify_secret(self, provided: Optional[str]) -> bool:
        return bool(self.config.webhook_secret) and (provided or "").strip() == self.config.webhook_secret

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.config.bot_token:
            raise ChannelNotConfiguredError("TELEGRAM_BOT_TOKEN missing")

        url = f"{self.config.api_base}/bot{self.config.bot_token}/{method}"
        async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
            response = await client.post(url, json=payload)

        try:
            data = response.json()
        except ValueError:
            data = {}
        logger.info(f"[Telegram] {method} -> {response.status_code} ok={bool(data.get('ok'))}")
        return {"status": response.status_code, "ok": response.is_success and bool(data.get("ok")), "result": data}

    async def send(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> Dict[str, Any]:
        payload = {"chat_id": chat_id, "text": text[:4000]}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._call("sendMessage", payload)

    async def send_message(self, chat_id: str, text: str) -> bool:
        try:
            result = await self.send(chat_id, text)
        except httpx.HTTPError as e:
            logger.error(f"[Telegram] sendMessage to {chat_id} failed: {e}")
            return False
        return result["ok"]

    async def download_file(self, file_id: str) -> Optional[bytes]:
        """Fetches a file (e.g. a voice note) by id; None when Telegram does not return it."""
        result = await self._call("getFile", {"file_id": file_id})
        file_path = ((result["result"] or {}).get("result") or {}).get("file_path")
        if not result["ok"] or not file_path:
            logger.warning(f"[Telegram] getFile {file_id} returned no file path")
            return None

        url = f"{self.config.api_base}/file/bot{self.config.bot_token}/{file_path}"
        async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
            response = await client.get(url)
        if not response.is_success:
            logger.warning(f"[Telegram] download of {file_path} answered {response.status_code}")
            return None
        return response.content

    async def set_webhook(self, url: str) -> Dict[str, Any]:
        if not self.config.webhook_secret:
            raise ChannelNotConfiguredError("TELEGRAM_WEBHOOK_SECRET missing")
        return await self._call("setWebhook", {"url": url, "secret_token": self.config.webhook_secret})
