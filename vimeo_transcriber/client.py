"""Client side of the transcriber: the two-step session and a command line entry point.

The session mirrors the browser UI. The user first enters Vimeo URLs, then
uploads the audio downloaded from them by hand. Results come back as JSON and
are bundled into a zip archive locally.
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx

from .archive import archive_filename, build_archive

logger = logging.getLogger(__name__)

TRANSCRIBE_PATH = "/api/transcribe-audio"
AUDIO_FIELD = "audio"
URL_MARKER = "vimeo.com"
UPLOAD_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int], None]


class ClientState(Enum):
    URL_ENTRY = "url-entry"
    UPLOAD = "upload"


@dataclass
class TranscriptionSession:
    """Transient client state, nothing here outlives the session."""

    state: ClientState = ClientState.URL_ENTRY
    urls: list[str] = field(default_factory=list)
    files: list[Path] = field(default_factory=list)
    transcriptions: list[dict] = field(default_factory=list)
    error: str = ""
    progress: str = ""
    busy: bool = False

    def submit_urls(self, text: str) -> bool:
        """Validate newline separated URLs and move on to the upload step."""
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not lines:
            self.error = "Por favor ingresa al menos una URL de Vimeo"
            return False
        vimeo_urls = [line for line in lines if URL_MARKER in line]
        if not vimeo_urls:
            self.error = "Por favor ingresa URLs válidas de Vimeo"
            return False
        self.urls = vimeo_urls
        self.error = ""
        self.state = ClientState.UPLOAD
        return True

    def back(self) -> None:
        self.state = ClientState.URL_ENTRY
        self.files = []

    def reset(self) -> None:
        self.state = ClientState.URL_ENTRY
        self.urls = []
        self.files = []
        self.transcriptions = []
        self.error = ""
        self.progress = ""

    def _report(self, percent: int, on_progress: Optional[ProgressCallback]) -> None:
        self.progress = f"Procesando: {percent}%"
        if on_progress is not None:
            on_progress(percent)

    async def _body_chunks(self, body: bytes, on_progress: Optional[ProgressCallback]) -> AsyncIterator[bytes]:
        total = len(body)
        for start in range(0, total, UPLOAD_CHUNK_SIZE):
            chunk = body[start:start + UPLOAD_CHUNK_SIZE]
            yield chunk
            self._report(round((start + len(chunk)) * 100 / total), on_progress)

    async def upload(
        self,
        http: httpx.AsyncClient,
        paths: Sequence[Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[bytes]:
        """Send the audio files to the server and return the zip of the results.

        Returns None when nothing was transcribed; `error` then says why.
        """
        if self.state is not ClientState.UPLOAD:
            raise RuntimeError("Submit the Vimeo URLs before uploading audio")
        if self.busy:
            raise RuntimeError("An upload is already in progress")
        self.files = [Path(p) for p in paths]
        if not self.files:
            self.error = "Por favor selecciona al menos un archivo de audio"
            return None

        self.busy = True
        self.error = ""
        self.transcriptions = []
        self.progress = "Transcribiendo archivos..."
        try:
            files = [
                (AUDIO_FIELD, (p.name, p.read_bytes(), mimetypes.guess_type(p.name)[0] or "application/octet-stream"))
                for p in self.files
            ]
            # Encode once so the body can be streamed with progress
            request = http.build_request("POST", TRANSCRIBE_PATH, files=files)
            body = request.read()
            response = await http.post(
                TRANSCRIBE_PATH,
                content=self._body_chunks(body, on_progress),
                headers={
                    "Content-Type": request.headers["Content-Type"],
                    "Content-Length": str(len(body)),
                },
            )
            response.raise_for_status()
            self.transcriptions = response.json()["transcriptions"]
        except httpx.HTTPStatusError as e:
            self.error = _server_error(e.response) or str(e)
            self.progress = ""
            return None
        except (httpx.HTTPError, OSError, ValueError, KeyError) as e:
            self.error = str(e) or "Error al procesar los archivos"
            self.progress = ""
            return None
        finally:
            self.busy = False

        self.progress = "¡Transcripciones completadas!"
        failed = [t["filename"] for t in self.transcriptions if t.get("status") == "error"]
        if failed:
            logger.warning("Transcription failed for: %s", ", ".join(failed))
        if not self.transcriptions:
            return None
        return build_archive(self.transcriptions)


def _server_error(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return data.get("error")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vimeo-transcriber-client",
        description="Upload audio downloaded from Vimeo and save the transcriptions as a zip archive.",
    )
    parser.add_argument("--server", default="http://localhost:8000", help="Transcriber base URL")
    parser.add_argument("--urls", type=Path, required=True, help="File with one Vimeo URL per line")
    parser.add_argument("--output", type=Path, default=Path("."), help="Directory for the zip archive")
    parser.add_argument("audio", type=Path, nargs="+", help="Audio files to transcribe")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, transport: Optional[httpx.AsyncBaseTransport] = None) -> int:
    session = TranscriptionSession()
    if not session.submit_urls(args.urls.read_text(encoding="utf-8")):
        print(session.error, file=sys.stderr)
        return 1

    async with httpx.AsyncClient(base_url=args.server, timeout=None, transport=transport) as http:
        archive = await session.upload(http, args.audio)
    if session.error:
        print(session.error, file=sys.stderr)
        return 1
    print(session.progress)
    if archive is None:
        return 0

    args.output.mkdir(parents=True, exist_ok=True)
    target = args.output / archive_filename()
    target.write_bytes(archive)
    print(f"Archive saved to {target}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
