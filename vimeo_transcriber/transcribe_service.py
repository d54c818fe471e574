"""This module contains the speech-to-text providers used to transcribe uploaded audio"""

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from typing import Optional

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from openai import AsyncOpenAI

from .config import AppSettings

logger = logging.getLogger(__name__)

SAMPLE_RATE_HZ = 16000
CHUNK_SIZE = 8192

# Amazon Transcribe wants a full locale, uploads are configured with ISO 639-1
LANGUAGE_LOCALES = {
    "de": "de-DE",
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "it": "it-IT",
    "pt": "pt-BR",
}


class TranscriptionError(RuntimeError):
    """A provider could not transcribe an audio file."""


class AudioConversionError(TranscriptionError):
    """ffmpeg could not decode the uploaded audio."""


class TranscriptionProvider(ABC):
    name: str = "provider"

    @abstractmethod
    async def transcribe(
        self, audio: bytes, filename: str, language: str, response_format: str
    ) -> str:
        """Convert raw audio bytes to text. Raises on failure."""
        ...


class TranscriptCollector(TranscriptResultStreamHandler):
    """Keeps the best alternative of every final transcript result."""

    def __init__(self, transcript_result_stream) -> None:
        super().__init__(transcript_result_stream)
        self.segments: list[str] = []

    async def handle_transcript_event(self, transcript_event: TranscriptEvent) -> None:
        for result in transcript_event.transcript.results:
            # Partial results are superseded by a later final one
            if result.is_partial or not result.alternatives:
                continue
            self.segments.append(result.alternatives[0].transcript)

    @property
    def text(self) -> str:
        return " ".join(s.strip() for s in self.segments if s.strip())


def to_locale(language: str) -> str:
    if "-" in language:
        return language
    try:
        return LANGUAGE_LOCALES[language.lower()]
    except KeyError:
        raise TranscriptionError(f"Unsupported language for Amazon Transcribe: {language}") from None


class AmazonTranscribeProvider(TranscriptionProvider):
    """Transcribes a whole file through an Amazon Transcribe streaming session."""

    name = "amazon"

    def __init__(self, region: str = "eu-west-1", ffmpeg_path: str = "ffmpeg") -> None:
        self.region = region
        self.ffmpeg_path = ffmpeg_path
        self._client: Optional[TranscribeStreamingClient] = None

    @property
    def client(self) -> TranscribeStreamingClient:
        # The client will automatically use AWS_PROFILE from the environment
        if self._client is None:
            self._client = TranscribeStreamingClient(region=self.region)
        return self._client

    async def to_pcm(self, audio: bytes) -> bytes:
        """Convert any ffmpeg-readable audio to PCM 16bit 16kHz mono."""
        proc = await asyncio.create_subprocess_exec(
            self.ffmpeg_path,
            "-i",
            "pipe:0",
            "-f",
            "s16le",
            "-acodec",
            "pcm_s16le",
            "-ar",
            str(SAMPLE_RATE_HZ),
            "-ac",
            "1",
            "-",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        pcm, stderr = await proc.communicate(input=audio)
        if proc.returncode != 0:
            tail = (stderr or b"").decode("utf-8", errors="replace").strip()[-300:]
            raise AudioConversionError(f"ffmpeg exited with code {proc.returncode}: {tail}")
        return pcm

    async def transcribe(
        self, audio: bytes, filename: str, language: str, response_format: str
    ) -> str:
        if response_format != "text":
            raise TranscriptionError(
                f"Amazon Transcribe only supports the 'text' format, got {response_format!r}"
            )
        language_code = to_locale(language)
        pcm = await self.to_pcm(audio)
        logger.debug("Converted %s to %d bytes of PCM", filename, len(pcm))

        stream = await self.client.start_stream_transcription(
            language_code=language_code,
            media_sample_rate_hz=SAMPLE_RATE_HZ,
            media_encoding="pcm",
        )

        async def send_audio():
            for start in range(0, len(pcm), CHUNK_SIZE):
                await stream.input_stream.send_audio_event(audio_chunk=pcm[start:start + CHUNK_SIZE])
            await stream.input_stream.end_stream()

        handler = TranscriptCollector(stream.output_stream)
        # Run sending and receiving in parallel
        tasks = [asyncio.ensure_future(send_audio()), asyncio.ensure_future(handler.handle_events())]
        try:
            await asyncio.gather(*tasks)
        finally:
            # A failed side must not leave the other one talking to a dead stream
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return handler.text


class WhisperTranscriptionProvider(TranscriptionProvider):
    """OpenAI Whisper speech-to-text backend."""

    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "whisper-1") -> None:
        self._api_key = api_key
        self.model = model

    async def transcribe(
        self, audio: bytes, filename: str, language: str, response_format: str
    ) -> str:
        if not self._api_key:
            raise TranscriptionError("OPENAI_API_KEY must be set to use Whisper")
        audio_file = io.BytesIO(audio)
        # The API infers the container from the file name
        audio_file.name = filename
        async with AsyncOpenAI(api_key=self._api_key) as client:
            response = await client.audio.transcriptions.create(
                model=self.model,
                file=audio_file,
                language=language,
                response_format=response_format,
            )
        text = response if isinstance(response, str) else response.text
        return text.strip()


def build_provider(settings: AppSettings) -> TranscriptionProvider:
    """Instantiate the provider selected by TRANSCRIPTION_PROVIDER."""
    name = settings.transcription_provider.lower()
    if name == "amazon":
        return AmazonTranscribeProvider(region=settings.aws_region, ffmpeg_path=settings.ffmpeg_path)
    if name == "openai":
        api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
        return WhisperTranscriptionProvider(api_key=api_key, model=settings.whisper_model)
    raise ValueError(f"Unknown transcription provider: {name}")
