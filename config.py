import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.getenv("LIVEDIGEST_DATA_DIR", str(BASE_DIR / "data")))
AUDIO_DIR = DATA_DIR / "audio"
DB_PATH = DATA_DIR / "livedigest.db"
STATIC_DIR = BASE_DIR / "static"

# Server
HOST = os.getenv("LIVEDIGEST_HOST", "127.0.0.1")
PORT = int(os.getenv("LIVEDIGEST_PORT", "3001"))

# Audio
AUDIO_EXT = ".webm"
TEMP_SUFFIX = "_temp"

# Webpage
PAGE_FETCH_TIMEOUT = 10
PAGE_MAX_CHARS = 10_000
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# LLM
LLM_TIMEOUT = 30

# Transcription (DashScope paraformer)
DASHSCOPE_BASE_URL = os.getenv("DASHSCOPE_BASE_URL", "https://dashscope.aliyuncs.com/api/v1")
TRANSCRIPTION_MODEL = os.getenv("LIVEDIGEST_TRANSCRIPTION_MODEL", "paraformer-v2")
TRANSCRIPTION_HTTP_TIMEOUT = 30
POLL_INTERVAL_SECS = 5
POLL_MAX_ATTEMPTS = 30

# Object storage
OBJECT_KEY_PREFIX = "temp_audio"
ADHOC_KEY_PREFIX = "audio_transcription"
PROBE_KEY_PREFIX = "test_upload"
