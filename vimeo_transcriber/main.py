"""FastAPI application exposing the transcription endpoint and the single-page UI."""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.datastructures import UploadFile

from .batch import AudioUpload, BatchValidationError, transcribe_batch, validate_batch
from .config import get_settings
from .schemas import ErrorResponse, TranscriptionResponse
from .transcribe_service import TranscriptionProvider, build_provider

AUDIO_FIELD = "audio"
MULTIPART_CONTENT_TYPE = "multipart/form-data"

logger = logging.getLogger(__name__)


class MalformedRequestError(ValueError):
    """The request body cannot carry audio uploads."""


def _configure_logging(level_name: str) -> None:
    """Ensure application logs propagate with the requested verbosity."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        )
    root_logger.setLevel(level)


settings = get_settings()
_configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name)
# Built on first use so a bad provider setting surfaces as a request error
transcription_provider: Optional[TranscriptionProvider] = None


def get_provider() -> TranscriptionProvider:
    global transcription_provider
    if transcription_provider is None:
        transcription_provider = build_provider(settings)
    return transcription_provider


def _error(status_code: int, message: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _upload_size(item: UploadFile) -> int:
    """Size of a spooled upload, without loading it into memory."""
    if item.size is not None:
        return item.size
    item.file.seek(0, os.SEEK_END)
    size = item.file.tell()
    item.file.seek(0)
    return size


def _audio_upload(item: UploadFile) -> AudioUpload:
    return AudioUpload(filename=item.filename or "", size=_upload_size(item), reader=item.read)


@app.get("/")
async def get_index() -> HTMLResponse:
    """Serve the index.html single-page UI."""
    with open(settings.index_html_path, encoding="utf-8") as f:
        return HTMLResponse(f.read())


@app.get("/health")
async def health() -> dict:
    return {"service": settings.app_name, "provider": get_provider().name}


@app.post("/api/transcribe-audio")
async def transcribe_audio(request: Request) -> JSONResponse:
    """Transcribe every file sent in the repeated `audio` field, in order.

    The whole batch is validated from the part sizes before any content is read
    or the first provider call is made. Once the loop starts, a failing file only
    affects its own result. A multipart part cut off before its closing boundary
    never becomes a file, so a body holding nothing but truncated parts is
    reported as having no audio.
    """
    try:
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith(MULTIPART_CONTENT_TYPE):
            raise MalformedRequestError(
                f"Expected {MULTIPART_CONTENT_TYPE} body, got {content_type or 'no content type'}"
            )

        async with request.form() as form:
            # Plain text values under the same field are not files
            uploads = [
                _audio_upload(item) for item in form.getlist(AUDIO_FIELD) if isinstance(item, UploadFile)
            ]

            try:
                validate_batch(uploads)
            except BatchValidationError as e:
                logger.warning("Rejected upload: %s", e.message)
                return _error(400, e.message)

            provider = get_provider()
            logger.info("Transcribing %d file(s) with %s", len(uploads), provider.name)
            results = await transcribe_batch(
                uploads,
                provider,
                language=settings.transcription_language,
                response_format=settings.transcription_response_format,
            )
        return JSONResponse(content=TranscriptionResponse(transcriptions=results).model_dump())
    except Exception as e:
        logger.exception("Error processing transcriptions")
        return _error(500, "Error al procesar las transcripciones", details=str(e))
