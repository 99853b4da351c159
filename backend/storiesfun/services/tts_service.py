"""OpenAI text-to-speech proxy."""

import aiohttp

from ..core.config import settings
from ..core.errors import UpstreamError
from ..core.logging import get_logger

logger = get_logger(__name__)


class TTSService:
    def __init__(self):
        self.timeout = aiohttp.ClientTimeout(total=60)

    async def synthesize(self, text: str) -> bytes:
        """Render text as MP3 audio."""
        payload = {
            "model": settings.tts_model,
            "input": text,
            "voice": settings.tts_voice,
            "response_format": "mp3",
        }
        headers = {"Authorization": f"Bearer {settings.openai_api_key or ''}"}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(settings.openai_tts_url, json=payload, headers=headers) as response:
                if response.status != 200:
                    detail = await response.text()
                    logger.error("tts_failed", status=response.status, detail=detail[:200])
                    raise UpstreamError("OpenAI", response.status, detail)
                audio = await response.read()

        logger.info("tts_generated", characters=len(text), audio_bytes=len(audio))
        return audio


tts_service = TTSService()
