import logging
import os
import threading

import requests

import config
from pipeline.errors import (
    CancelledError,
    ConfigError,
    PollTimeoutError,
    RemoteError,
    TranscriptionError,
)
from processing.extractors import Fetcher, extract_text, fetch_json

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Asynchronous speech-to-text jobs on DashScope (paraformer).

    The API key is taken from ``DASHSCOPE_API_KEY`` or, failing that, from the
    stored LLM configuration, which is where the UI collects it.
    """

    def __init__(self, db=None, api_key: str | None = None,
                 base_url: str = config.DASHSCOPE_BASE_URL,
                 model: str = config.TRANSCRIPTION_MODEL,
                 poll_interval: float = config.POLL_INTERVAL_SECS,
                 max_attempts: int = config.POLL_MAX_ATTEMPTS,
                 fetch: Fetcher = fetch_json):
        self._db = db
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._fetch = fetch

    def _resolve_api_key(self) -> str:
        if self._api_key:
            return self._api_key
        key = os.getenv("DASHSCOPE_API_KEY")
        if not key and self._db is not None:
            key = (self._db.get_config("llm") or {}).get("apiKey")
        if not key:
            raise ConfigError("Transcription API key is not configured (DASHSCOPE_API_KEY or LLM apiKey)")
        return key

    def submit(self, audio_url: str) -> str:
        api_key = self._resolve_api_key()
        try:
            response = requests.post(
                f"{self.base_url}/services/audio/asr/transcription",
                json={"model": self.model, "input": {"file_urls": [audio_url]}},
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                    "X-DashScope-Async": "enable",
                },
                timeout=config.TRANSCRIPTION_HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RemoteError(f"Could not submit transcription job: {e}") from e

        if not response.ok:
            raise RemoteError(
                f"Transcription submit failed: {response.status_code} - {response.text}",
                status=response.status_code, body=response.text,
            )
        job_id = ((_json(response).get("output") or {}).get("task_id"))
        if not job_id:
            raise RemoteError(f"Transcription submit returned no job id: {response.text}")
        logger.info("Submitted transcription job %s", job_id)
        return job_id

    def query(self, job_id: str) -> dict:
        api_key = self._resolve_api_key()
        try:
            response = requests.get(
                f"{self.base_url}/tasks/{job_id}",
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=config.TRANSCRIPTION_HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RemoteError(f"Could not query transcription job {job_id}: {e}") from e
        if not response.ok:
            raise RemoteError(
                f"Transcription query failed: {response.status_code} - {response.text}",
                status=response.status_code, body=response.text,
            )
        return _json(response)

    def poll(self, job_id: str, cancel: threading.Event | None = None) -> dict:
        """Wait for a terminal state. Returns the job's ``output`` on success.

        Queries are spaced by the full poll interval; the ceiling is the
        attempt count, never a shortened wait.
        """
        cancel = cancel or threading.Event()
        for attempt in range(1, self.max_attempts + 1):
            if cancel.is_set():
                raise CancelledError(f"Transcription job {job_id} cancelled")

            output = self.query(job_id).get("output") or {}
            status = output.get("task_status")
            logger.info("Transcription job %s attempt %d/%d: %s",
                        job_id, attempt, self.max_attempts, status)

            if status == "SUCCEEDED":
                return output
            if status == "FAILED":
                message = output.get("message") or output.get("code") or "transcription failed"
                raise TranscriptionError(message)

            if attempt == self.max_attempts:
                break
            if cancel.wait(self.poll_interval):
                raise CancelledError(f"Transcription job {job_id} cancelled")

        raise PollTimeoutError(
            f"Transcription job {job_id} did not finish after {self.max_attempts} attempts"
        )

    def extract(self, output: dict) -> str:
        return extract_text(output.get("results"), self._fetch)

    def transcribe(self, audio_url: str, cancel: threading.Event | None = None) -> str:
        job_id = self.submit(audio_url)
        output = self.poll(job_id, cancel)
        text = self.extract(output)
        logger.info("Transcription job %s produced %d characters", job_id, len(text))
        return text


def _json(response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
