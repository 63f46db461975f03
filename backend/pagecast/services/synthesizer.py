# backend/pagecast/services/synthesizer.py
import re
import time
from typing import Optional, Protocol

import httpx

from ..errors import InvalidInput, SynthesisFailed
from ..utils.logging import service_logger

VOICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# ElevenLabs output formats look like `mp3_44100_128` or `pcm_16000`
_FORMAT_MEDIA = {
    "mp3": ("mp3", "audio/mpeg"),
    "pcm": ("pcm", "audio/L16"),
    "ulaw": ("ulaw", "audio/basic"),
    "opus": ("opus", "audio/ogg"),
}


class Synthesizer(Protocol):
    file_extension: str
    content_type: str

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Render one page of text to a fully buffered audio payload"""


def validate_voice_id(voice_id: str) -> str:
    if not isinstance(voice_id, str) or not VOICE_ID_PATTERN.match(voice_id):
        raise InvalidInput(f"Malformed voice id: {voice_id!r}")
    return voice_id


def validate_text(text: Optional[str]) -> str:
    if text is None or not text.strip():
        raise InvalidInput("Cannot synthesize empty page text")
    return text


class ElevenLabsSynthesizer:
    def __init__(
            self,
            api_key: Optional[str],
            base_url: str = "https://api.elevenlabs.io",
            model_id: str = "eleven_multilingual_v2",
            output_format: str = "mp3_44100_128",
            timeout: float = 60.0,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.output_format = output_format
        self.timeout = timeout
        self.transport = transport
        codec = output_format.split("_", 1)[0]
        self.file_extension, self.content_type = _FORMAT_MEDIA.get(codec, (codec, "application/octet-stream"))

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        validate_text(text)
        validate_voice_id(voice_id)
        if not self.api_key:
            raise SynthesisFailed("ElevenLabs API key is not configured")

        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    transport=self.transport
            ) as client:
                response = await client.post(
                    f"/v1/text-to-speech/{voice_id}",
                    params={"output_format": self.output_format},
                    headers={"xi-api-key": self.api_key, "Accept": self.content_type},
                    json={"text": text, "model_id": self.model_id}
                )
                response.raise_for_status()
                audio = response.content
        except httpx.TimeoutException as e:
            raise SynthesisFailed("ElevenLabs request timed out", e) from e
        except httpx.HTTPStatusError as e:
            raise SynthesisFailed(self._describe_http_failure(e.response, voice_id)) from e
        except httpx.RequestError as e:
            raise SynthesisFailed("Could not reach ElevenLabs", e) from e

        if not audio:
            raise SynthesisFailed("ElevenLabs returned an empty audio payload")

        service_logger.debug("Speech synthesized", extra={
            "voice_id": voice_id,
            "text_length": len(text),
            "audio_bytes": len(audio),
            "execution_time_ms": round((time.perf_counter() - start_time) * 1000, 2)
        })
        return audio

    @staticmethod
    def _describe_http_failure(response: httpx.Response, voice_id: str) -> str:
        status_code = response.status_code
        if status_code in (401, 403):
            reason = "authentication rejected"
        elif status_code == 429:
            reason = "rate limit or quota exceeded"
        elif status_code in (400, 404, 422):
            reason = f"request rejected (voice {voice_id!r} may be unsupported)"
        else:
            reason = "service error"

        detail = ""
        try:
            body = response.json()
            if isinstance(body, dict):
                message = body.get("detail")
                if isinstance(message, dict):
                    message = message.get("message")
                if message:
                    detail = f": {str(message)[:180]}"
        except ValueError:
            pass
        return f"ElevenLabs returned HTTP {status_code}, {reason}{detail}"
