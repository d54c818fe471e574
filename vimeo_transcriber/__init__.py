"""
Vimeo audio transcriber built with FastAPI, exposing
- an index.html UI,
- an upload endpoint that sends each audio file to a speech-to-text provider
(Amazon Transcribe or OpenAI Whisper) and returns the transcriptions,
- and a small Python client that bundles the results into a zip archive.
"""

__version__ = "0.2.0"
