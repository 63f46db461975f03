# backend/tests/services/test_synthesizer.py
import json

import httpx
import pytest

from pagecast.errors import InvalidInput, SynthesisFailed
from pagecast.services.synthesizer import ElevenLabsSynthesizer, validate_voice_id


def make_synthesizer(handler, **kwargs):
    return ElevenLabsSynthesizer("el-test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_synthesize_posts_text_and_returns_audio():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"ID3-audio-bytes")

    synthesizer = make_synthesizer(handler)
    audio = await synthesizer.synthesize("Hello world", "voiceX")

    assert audio == b"ID3-audio-bytes"
    request = requests[0]
    assert request.url.path == "/v1/text-to-speech/voiceX"
    assert request.url.params["output_format"] == "mp3_44100_128"
    assert request.headers["xi-api-key"] == "el-test"
    assert json.loads(request.content) == {"text": "Hello world", "model_id": "eleven_multilingual_v2"}


def test_output_format_determines_extension_and_content_type():
    synthesizer = ElevenLabsSynthesizer("el-test", output_format="pcm_16000")
    assert synthesizer.file_extension == "pcm"
    assert synthesizer.content_type == "audio/L16"

    default = ElevenLabsSynthesizer("el-test")
    assert default.file_extension == "mp3"
    assert default.content_type == "audio/mpeg"


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n\t"])
async def test_empty_text_is_invalid_input_without_a_request(text):
    calls = []
    synthesizer = make_synthesizer(lambda request: calls.append(request) or httpx.Response(200, content=b"x"))

    with pytest.raises(InvalidInput):
        await synthesizer.synthesize(text, "voiceX")
    assert calls == []


@pytest.mark.parametrize("voice_id", ["", "voice with spaces", "../etc", "x" * 65])
def test_malformed_voice_ids_are_rejected(voice_id):
    with pytest.raises(InvalidInput):
        validate_voice_id(voice_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, fragment", [
    (401, "authentication"),
    (429, "quota"),
    (404, "unsupported"),
    (503, "service error"),
])
async def test_http_errors_become_synthesis_failures(status_code, fragment):
    synthesizer = make_synthesizer(
        lambda request: httpx.Response(status_code, json={"detail": {"message": "provider says no"}})
    )

    with pytest.raises(SynthesisFailed) as excinfo:
        await synthesizer.synthesize("Hello", "voiceX")

    assert fragment in str(excinfo.value)
    assert "provider says no" in str(excinfo.value)
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_timeout_becomes_synthesis_failure():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(SynthesisFailed, match="timed out"):
        await make_synthesizer(handler).synthesize("Hello", "voiceX")


@pytest.mark.asyncio
async def test_empty_audio_payload_is_a_failure():
    with pytest.raises(SynthesisFailed, match="empty audio"):
        await make_synthesizer(lambda request: httpx.Response(200, content=b"")).synthesize("Hello", "voiceX")


@pytest.mark.asyncio
async def test_missing_api_key_is_a_failure():
    with pytest.raises(SynthesisFailed, match="API key"):
        await ElevenLabsSynthesizer(None).synthesize("Hello", "voiceX")
