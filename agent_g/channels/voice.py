import logging
from typing import Optional
from .telegram import TelegramClient

logger = logging.getLogger(__name__)


class TelegramVoiceTranscriber:
    """
    Turns a Telegram voice note into text with Groq's speech-to-text endpoint.

    Returns None whenever there is nothing usable (no Groq client, download
    failed, empty transcript); callers treat that like an empty message.
    """

    def __init__(self, telegram: TelegramClient, groq=None, model: str = "whisper-large-v3"):
        self.telegram = telegram
        self.groq = groq
        self.model = model

    @property
    def enabled(self) -> bool:
        return self.groq is not None

    async def transcribe(self, file_id: str) -> Optional[str]:
        if not self.enabled:
            logger.info("[Voice] Transcription disabled, ignoring voice note")
            return None

        try:
            audio = await self.telegram.download_file(file_id)
            if not audio:
                return None

            transcription = self.groq.audio.transcriptions.create(
                file=(f"{file_id}.ogg", audio),
                model=self.model,
            )
        except Exception as e:
            logger.error(f"[Voice] Transcription of {file_id} failed: {e}")
            return None

        text = (getattr(transcription, "text", "") or "").strip()
        logger.info(f"[Voice] Transcribed {file_id}: {len(text)} chars")
        return text or None
