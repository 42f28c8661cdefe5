import logging
import socket
import sys

import uvicorn

import config
from capture.audio_files import AudioFiles
from db.database import Database
from pipeline.orchestrator import TaskOrchestrator
from processing.summarizer import Summarizer
from processing.transcriber import TranscriptionClient
from server.app import create_app
from storage.object_store import ObjectStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("livedigest")


def find_available_port(start: int, end: int) -> int:
    for port in range(start, end + 1):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((config.HOST, port))
                return port
            except OSError:
                continue
    raise RuntimeError(f"No free port between {start} and {end}")


def build_app():
    config.AUDIO_DIR.mkdir(parents=True, exist_ok=True)

    db = Database(config.DB_PATH)
    audio = AudioFiles(config.AUDIO_DIR)
    object_store = ObjectStore(db)
    transcriber = TranscriptionClient(db)
    summarizer = Summarizer()
    orchestrator = TaskOrchestrator(db, audio, object_store, transcriber, summarizer)

    return create_app(db, orchestrator, object_store, summarizer)


def main():
    try:
        port = find_available_port(config.PORT, config.PORT + 20)
    except RuntimeError as e:
        logger.error(str(e))
        sys.exit(1)

    if port != config.PORT:
        logger.info("Port %d in use, using %d", config.PORT, port)
    config.PORT = port

    app = build_app()
    logger.info("LiveDigest running on http://%s:%d", config.HOST, config.PORT)
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level="warning")


if __name__ == "__main__":
    main()
