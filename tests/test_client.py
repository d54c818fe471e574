import io
import zipfile

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from vimeo_transcriber.client import ClientState, TranscriptionSession, parse_args, run
from vimeo_transcriber.main import app


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

URLS = "https://vimeo.com/123456789\nhttps://vimeo.com/987654321\n"


def _session_at_upload() -> TranscriptionSession:
    session = TranscriptionSession()
    assert session.submit_urls(URLS)
    return session


def _audio_files(tmp_path, *names):
    paths = []
    for name in names:
        path = tmp_path / name
        path.write_bytes(b"fake-audio-" + name.encode())
        paths.append(path)
    return paths


def _mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def _ok_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"transcriptions": [
                {"filename": "a.mp3", "transcription": "hola", "status": "ok", "error": None},
                {"filename": "b.mp3", "transcription": "Error al transcribir este archivo: x",
                 "status": "error", "error": "x"},
            ]},
        )
    return handler


# ---------------------------------------------------------------------------
# URL entry step
# ---------------------------------------------------------------------------

class TestSubmitUrls:
    def test_moves_to_upload_with_vimeo_urls(self):
        session = TranscriptionSession()
        assert session.submit_urls("https://vimeo.com/1\n\nhttps://example.com/2\n")
        assert session.state is ClientState.UPLOAD
        assert session.urls == ["https://vimeo.com/1"]
        assert session.error == ""

    def test_empty_input(self):
        session = TranscriptionSession()
        assert not session.submit_urls("  \n \n")
        assert session.state is ClientState.URL_ENTRY
        assert session.error == "Por favor ingresa al menos una URL de Vimeo"

    def test_no_vimeo_url(self):
        session = TranscriptionSession()
        assert not session.submit_urls("https://youtube.com/watch?v=1")
        assert session.state is ClientState.URL_ENTRY
        assert session.error == "Por favor ingresa URLs válidas de Vimeo"

    def test_back_and_reset(self, tmp_path):
        session = _session_at_upload()
        session.files = _audio_files(tmp_path, "a.mp3")
        session.back()
        assert session.state is ClientState.URL_ENTRY
        assert session.files == []
        assert session.urls

        session = _session_at_upload()
        session.transcriptions = [{"filename": "a.mp3", "transcription": "hola"}]
        session.progress = "¡Transcripciones completadas!"
        session.reset()
        assert session == TranscriptionSession()


# ---------------------------------------------------------------------------
# Upload step
# ---------------------------------------------------------------------------

class TestUpload:
    @pytest.mark.asyncio
    async def test_success_returns_archive(self, tmp_path):
        session = _session_at_upload()
        requests = []
        progress = []

        async with _mock_http(_ok_handler(requests)) as http:
            archive = await session.upload(http, _audio_files(tmp_path, "a.mp3", "b.mp3"), progress.append)

        assert session.error == ""
        assert session.progress == "¡Transcripciones completadas!"
        assert session.busy is False
        assert session.state is ClientState.UPLOAD
        assert progress[-1] == 100

        request = requests[0]
        assert request.url.path == "/api/transcribe-audio"
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert request.content.count(b'name="audio"') == 2
        assert b'filename="a.mp3"' in request.content

        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.namelist() == ["transcripcion_1_a_mp3.txt", "transcripcion_2_b_mp3.txt"]
            assert zf.read("transcripcion_1_a_mp3.txt") == "hola".encode()

    @pytest.mark.asyncio
    async def test_server_error_is_shown_and_state_kept(self, tmp_path):
        session = _session_at_upload()

        def handler(request):
            return httpx.Response(400, json={"error": "El archivo b.mp3 excede el límite de 25MB"})

        async with _mock_http(handler) as http:
            archive = await session.upload(http, _audio_files(tmp_path, "b.mp3"))

        assert archive is None
        assert session.error == "El archivo b.mp3 excede el límite de 25MB"
        assert session.progress == ""
        assert session.state is ClientState.UPLOAD
        assert session.busy is False

    @pytest.mark.asyncio
    async def test_connection_error(self, tmp_path):
        session = _session_at_upload()

        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with _mock_http(handler) as http:
            assert await session.upload(http, _audio_files(tmp_path, "a.mp3")) is None

        assert session.error == "connection refused"

    @pytest.mark.asyncio
    async def test_error_body_that_is_not_an_object(self, tmp_path):
        session = _session_at_upload()

        def handler(request):
            return httpx.Response(502, json=["upstream", "down"])

        async with _mock_http(handler) as http:
            assert await session.upload(http, _audio_files(tmp_path, "a.mp3")) is None

        assert "502" in session.error
        assert session.busy is False
        assert session.state is ClientState.UPLOAD

    @pytest.mark.asyncio
    async def test_no_files_selected(self):
        session = _session_at_upload()

        async with _mock_http(_ok_handler([])) as http:
            assert await session.upload(http, []) is None

        assert session.error == "Por favor selecciona al menos un archivo de audio"

    @pytest.mark.asyncio
    async def test_requires_upload_state(self, tmp_path):
        session = TranscriptionSession()

        async with _mock_http(_ok_handler([])) as http:
            with pytest.raises(RuntimeError):
                await session.upload(http, _audio_files(tmp_path, "a.mp3"))

    @pytest.mark.asyncio
    async def test_rejects_duplicate_submission(self, tmp_path):
        session = _session_at_upload()
        session.busy = True
        requests = []

        async with _mock_http(_ok_handler(requests)) as http:
            with pytest.raises(RuntimeError, match="already in progress"):
                await session.upload(http, _audio_files(tmp_path, "a.mp3"))

        assert requests == []

    @pytest.mark.asyncio
    async def test_against_the_app(self, tmp_path):
        session = _session_at_upload()
        transport = httpx.ASGITransport(app=app)

        provider = MagicMock()
        provider.name = "mock"
        provider.transcribe = AsyncMock(side_effect=["hola", RuntimeError("boom")])

        with patch("vimeo_transcriber.main.transcription_provider", provider):
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                archive = await session.upload(http, _audio_files(tmp_path, "a.mp3", "b.mp3"))

        assert [t["status"] for t in session.transcriptions] == ["ok", "error"]
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            assert zf.read("transcripcion_2_b_mp3.txt").decode() == "Error al transcribir este archivo: boom"


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

class TestRun:
    @pytest.mark.asyncio
    async def test_writes_archive(self, tmp_path):
        urls = tmp_path / "urls.txt"
        urls.write_text(URLS)
        audio = _audio_files(tmp_path, "a.mp3", "b.mp3")
        out = tmp_path / "out"
        args = parse_args(["--urls", str(urls), "--output", str(out), *map(str, audio)])

        status = await run(args, transport=httpx.MockTransport(_ok_handler([])))

        assert status == 0
        archives = list(out.glob("transcripciones_vimeo_*.zip"))
        assert len(archives) == 1

    @pytest.mark.asyncio
    async def test_invalid_urls_fail_without_request(self, tmp_path, capsys):
        urls = tmp_path / "urls.txt"
        urls.write_text("https://example.com/video\n")
        requests = []
        args = parse_args(["--urls", str(urls), str(tmp_path / "a.mp3")])

        status = await run(args, transport=httpx.MockTransport(_ok_handler(requests)))

        assert status == 1
        assert requests == []
        assert "URLs válidas de Vimeo" in capsys.readouterr().err
