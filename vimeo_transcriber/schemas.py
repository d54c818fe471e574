"""Response models for the transcription endpoint."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TranscriptionResult(BaseModel):
    filename: str
    transcription: str
    status: Literal["ok", "error"] = "ok"
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "error"


class TranscriptionResponse(BaseModel):
    transcriptions: list[TranscriptionResult] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
