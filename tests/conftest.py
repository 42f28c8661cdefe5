import pytest

from capture.audio_files import AudioFiles
from db.database import Database
from fakes import LLM_CONFIG, FakeObjectStore, FakeSummarizer, FakeTranscriber
from pipeline.orchestrator import TaskOrchestrator


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "test.db")
    database.set_config("llm", dict(LLM_CONFIG))
    return database


@pytest.fixture
def audio(tmp_path):
    return AudioFiles(tmp_path / "audio")


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def pages():
    return {}


@pytest.fixture
def orchestrator(db, audio, object_store, transcriber, summarizer, pages):
    def fetch_page(url):
        result = pages.get(url, "page text")
        if isinstance(result, Exception):
            raise result
        return result

    return TaskOrchestrator(db, audio, object_store, transcriber, summarizer, fetch_page=fetch_page)
