import logging
from ..config import AgentGConfig
from ..models.channels import ChannelType
from ..store.records import ChannelLinkStore
from .telegram import TelegramClient

logger = logging.getLogger(__name__)


class TelegramCompletionNotifier:
    """Tells a user's linked Telegram chat that a task finished."""

    def __init__(self, config: AgentGConfig, links: ChannelLinkStore, telegram: TelegramClient):
        self.config = config
        self.links = links
        self.telegram = telegram

    async def notify(self, user_id: str, task_id: str, summary: str) -> bool:
        if not self.config.telegram.bot_token:
            return False

        chat_id = await self.links.external_id_for(user_id, ChannelType.TELEGRAM)
        if not chat_id:
            return False

        link = await self.links.resolve(ChannelType.TELEGRAM, chat_id)
        locale = link.locale if link else "en"
        text = "\n".join([
            "Agent G finished your task.",
            summary.split("\n")[0],
            f"Dashboard: {self.config.dashboard_url(locale, task_id)}",
        ])

        sent = await self.telegram.send_message(chat_id, text)
        if not sent:
            logger.warning(f"[Notify] Telegram completion notice for task {task_id} was not delivered")
        return sent
