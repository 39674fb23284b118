import logging

from openai import AsyncOpenAI

from interview_coach.config import settings
from interview_coach.models import AudioClip

logger = logging.getLogger(__name__)

_client = AsyncOpenAI(
    base_url=settings.LLM_BASE_URL,
    api_key=settings.OPENAI_API_KEY or "not-needed",
    timeout=settings.LLM_TIMEOUT,
)

MIME_TO_EXT = {
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/mp4": ".mp4",
    "audio/x-m4a": ".m4a",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
}


def audio_filename(mime_type: str) -> str:
    """Pick a file name whose extension matches the container, e.g. answer.webm."""
    base = (mime_type or "").split(";")[0].strip().lower()
    return "answer" + MIME_TO_EXT.get(base, ".webm")


async def chat_completion(
    prompt: str,
    temperature: float = 0.7,
    max_tokens: int = 2048,
    json_mode: bool = False,
) -> str | None:
    """Send a prompt to the chat model and return the response text."""
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    try:
        response = await _client.chat.completions.create(
            model=settings.LLM_MODEL,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content
    except Exception as e:
        logger.error("LLM request failed: %s", e)
        return None


async def transcribe_audio(clip: AudioClip) -> str | None:
    """Transcribe recorded answer audio. Returns None on failure."""
    try:
        response = await _client.audio.transcriptions.create(
            model=settings.TRANSCRIPTION_MODEL,
            file=(audio_filename(clip.mime_type), clip.data, clip.mime_type.split(";")[0]),
        )
        return (response.text or "").strip()
    except Exception as e:
        logger.error("Transcription request failed: %s", e)
        return None


async def synthesize_speech(text: str) -> bytes | None:
    """Render text to mp3 audio bytes. Returns None on failure."""
    try:
        response = await _client.audio.speech.create(
            model=settings.TTS_MODEL,
            voice=settings.TTS_VOICE,
            input=text,
        )
        return response.content
    except Exception as e:
        logger.error("Speech synthesis request failed: %s", e)
        return None
