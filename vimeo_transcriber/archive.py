"""Zip packaging of transcription results."""

import io
import re
import time
import zipfile
from collections.abc import Iterable, Mapping
from typing import Optional, Union

from .schemas import TranscriptionResult

# Fixed entry timestamp so identical results produce identical archives
ENTRY_DATE_TIME = (1980, 1, 1, 0, 0, 0)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)

ResultLike = Union[TranscriptionResult, Mapping]


def entry_name(index: int, filename: str) -> str:
    """Name of the archive entry for the result at a zero-based index."""
    return f"transcripcion_{index + 1}_{_UNSAFE_CHARS.sub('_', filename)}.txt"


def archive_filename(now: Optional[float] = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    return f"transcripciones_vimeo_{millis}.zip"


def _fields(result: ResultLike) -> tuple[str, str]:
    if isinstance(result, TranscriptionResult):
        return result.filename, result.transcription
    return result["filename"], result["transcription"]


def build_archive(results: Iterable[ResultLike]) -> bytes:
    """Return a zip with one text entry per result, in result order."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for index, result in enumerate(results):
            filename, text = _fields(result)
            info = zipfile.ZipInfo(entry_name(index, filename), date_time=ENTRY_DATE_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, text.encode("utf-8"))
    return buffer.getvalue()
