"""Upfront validation and the sequential per-file transcription loop."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from .schemas import TranscriptionResult
from .transcribe_service import TranscriptionProvider

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 25 * 1024 * 1024  # 25MB per file

FAILURE_PREFIX = "Error al transcribir este archivo: "


class BatchValidationError(ValueError):
    """The batch was rejected before any transcription started."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class AudioUpload:
    """An uploaded file whose content is only read when it is transcribed."""

    filename: str
    size: int
    reader: Callable[[], Awaitable[bytes]]

    @classmethod
    def from_bytes(cls, filename: str, content: bytes) -> "AudioUpload":
        async def read() -> bytes:
            return content

        return cls(filename=filename, size=len(content), reader=read)

    async def read(self) -> bytes:
        return await self.reader()


def validate_batch(uploads: Sequence[AudioUpload], max_file_size: int = MAX_FILE_SIZE) -> None:
    """Reject an empty batch, or the whole batch if any file is too large."""
    if not uploads:
        raise BatchValidationError("No se proporcionaron archivos de audio")
    for upload in uploads:
        if upload.size > max_file_size:
            limit_mb = max_file_size // (1024 * 1024)
            raise BatchValidationError(
                f"El archivo {upload.filename} excede el límite de {limit_mb}MB"
            )


def failure_message(exc: BaseException) -> str:
    return f"{FAILURE_PREFIX}{exc}"


async def transcribe_batch(
    uploads: Sequence[AudioUpload],
    provider: TranscriptionProvider,
    language: str,
    response_format: str = "text",
) -> list[TranscriptionResult]:
    """Transcribe each upload in order, one at a time.

    A failing file gets an error result and the loop moves on to the next one,
    so the returned list always has one entry per upload.
    """
    results = []
    for upload in uploads:
        logger.info("Transcribing %s (%d bytes)", upload.filename, upload.size)
        try:
            audio = await upload.read()
            text = await provider.transcribe(audio, upload.filename, language, response_format)
        except Exception as e:
            logger.error("Error transcribing %s: %s", upload.filename, e, exc_info=True)
            results.append(
                TranscriptionResult(
                    filename=upload.filename,
                    transcription=failure_message(e),
                    status="error",
                    error=str(e),
                )
            )
            continue
        results.append(TranscriptionResult(filename=upload.filename, transcription=text))
    return results
