import sys
import os

# Ensure the project root is in sys.path so `from vimeo_transcriber.main import app` works
# with relative imports inside the package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Keep the default provider regardless of the developer's .env
os.environ.setdefault("TRANSCRIPTION_PROVIDER", "amazon")
os.environ.setdefault("TRANSCRIPTION_LANGUAGE", "es")
