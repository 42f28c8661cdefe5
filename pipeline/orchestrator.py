"""Task lifecycle: pending -> processing -> completed | failed, re-enterable.

Every stage writes the task record before the next one starts. A process that
dies mid-pipeline leaves the task in ``processing``; it is only picked up again
when a client explicitly asks for the operation to run again.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable

import config
from capture.audio_files import AudioFiles
from db.database import Database
from db.models import LLMConfig, Task, TaskStatus, TaskType
from pipeline.errors import (
    ConfigError,
    PipelineError,
    PreconditionError,
    TaskNotFoundError,
    TranscriptionError,
)
from processing.summarizer import Summarizer
from processing.transcriber import TranscriptionClient
from processing.webpage import fetch_page_text
from storage.object_store import ObjectStore, object_key

logger = logging.getLogger(__name__)

CAPTURE_COMPLETE = "Audio capture complete"
CAPTURE_FAILED = "Audio capture failed to start"


class TaskOrchestrator:
    def __init__(self, db: Database, audio: AudioFiles, object_store: ObjectStore,
                 transcriber: TranscriptionClient, summarizer: Summarizer,
                 fetch_page: Callable[[str], str] = fetch_page_text):
        self.db = db
        self.audio = audio
        self.object_store = object_store
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.fetch_page = fetch_page
        self._active: dict[str, threading.Event] = {}
        self._active_lock = threading.Lock()
        # Deleted live tasks whose run was still in flight at deletion time.
        self._reclaim_on_exit: set[str] = set()

    # -- Helpers --

    def _get(self, task_id: str) -> Task:
        task = self.db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def _get_typed(self, task_id: str, task_type: TaskType) -> Task:
        task = self._get(task_id)
        if task.type != task_type.value:
            raise PreconditionError(f"Task {task_id} is not a {task_type.value} task")
        return task

    def _update(self, task_id: str, **fields) -> Task:
        task = self.db.update_task(task_id, **fields)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} was deleted while processing")
        return task

    def _llm_config(self) -> LLMConfig:
        document = self.db.get_config("llm")
        if not document:
            raise ConfigError("LLM is not configured, set baseUrl, model and apiKey first")
        return LLMConfig(**document)

    def _fail(self, task_id: str, error: Exception):
        try:
            self.db.update_task(
                task_id,
                status=TaskStatus.failed.value,
                summary=f"Processing failed: {error}",
                is_recording=False,
            )
        except Exception as e:
            logger.error("Could not record failure for task %s: %s", task_id, e)

    @property
    def active_count(self) -> int:
        with self._active_lock:
            return len(self._active)

    def is_running(self, task_id: str) -> bool:
        with self._active_lock:
            return task_id in self._active

    @contextmanager
    def _run(self, task_id: str, stage: str):
        """Hold the task's run slot; on any failure mark the task failed and re-raise."""
        cancel = threading.Event()
        with self._active_lock:
            if task_id in self._active:
                raise PreconditionError(f"Task {task_id} is already being processed")
            self._active[task_id] = cancel
        logger.info("Task %s: %s started", task_id, stage)
        try:
            yield cancel
        except Exception as e:
            logger.error("Task %s: %s failed: %s", task_id, stage, e)
            self._fail(task_id, e)
            raise
        else:
            logger.info("Task %s: %s finished", task_id, stage)
        finally:
            with self._active_lock:
                self._active.pop(task_id, None)
                reclaim = task_id in self._reclaim_on_exit
                self._reclaim_on_exit.discard(task_id)
            if reclaim:
                self._reclaim_audio(task_id)

    # -- Capture phase (live) --

    def start_capture(self, task_id: str) -> Task:
        self._get_typed(task_id, TaskType.live)
        with self._run(task_id, "start-capture"):
            return self._update(task_id, status=TaskStatus.processing.value, is_recording=True)

    def live_task(self, task_id: str) -> Task:
        return self._get_typed(task_id, TaskType.live)

    def record_upload(self, task_id: str) -> Task:
        """A capture upload landed; the session is considered open."""
        self._get_typed(task_id, TaskType.live)
        return self._update(task_id, status=TaskStatus.processing.value, is_recording=True)

    def stop_capture(self, task_id: str) -> Task:
        self._get_typed(task_id, TaskType.live)
        with self._run(task_id, "stop-capture"):
            if self.audio.has_segment(task_id):
                audio_file = self.audio.merge(task_id)
            else:
                audio_file = self.audio.finalize(task_id)
            return self._update(
                task_id,
                status=TaskStatus.completed.value,
                is_recording=False,
                summary=CAPTURE_COMPLETE,
                audio_file=audio_file,
            )

    def capture_failed(self, task_id: str) -> Task:
        self._get_typed(task_id, TaskType.live)
        return self._update(
            task_id,
            status=TaskStatus.failed.value,
            is_recording=False,
            summary=CAPTURE_FAILED,
        )

    # -- Summarize phase --

    def summarize_webpage(self, task_id: str) -> Task:
        task = self._get_typed(task_id, TaskType.webpage)
        with self._run(task_id, "summarize-webpage"):
            self._update(task_id, status=TaskStatus.processing.value)
            content = self.fetch_page(task.url)
            self._update(task_id, content=content)
            summary = self.summarizer.request(content, self._llm_config())
            return self._update(task_id, summary=summary, status=TaskStatus.completed.value)

    def require_recorded_audio(self, task_id: str) -> Task:
        """A live task whose capture is closed and whose canonical file exists."""
        task = self._get_typed(task_id, TaskType.live)
        if task.is_recording:
            raise PreconditionError(f"Task {task_id} is still recording, stop the capture first")
        if not self.audio.has_canonical(task_id):
            raise PreconditionError("Audio file does not exist, finish the recording first")
        return task

    def summarize_live_audio(self, task_id: str) -> Task:
        self.require_recorded_audio(task_id)

        with self._run(task_id, "summarize-live-audio") as cancel:
            self._update(task_id, status=TaskStatus.processing.value)
            key = object_key(task_id, self.audio.ext)
            audio_url = self.object_store.put(self.audio.canonical_path(task_id), key)
            return self._transcribe_and_summarize(task_id, audio_url, cancel, key)

    def process_with_known_url(self, task_id: str, file_url: str) -> Task:
        if not task_id or not file_url:
            raise PreconditionError("taskId and fileUrl are required")
        self._get_typed(task_id, TaskType.live)
        with self._run(task_id, "process-with-known-url") as cancel:
            self._update(task_id, status=TaskStatus.processing.value)
            return self._transcribe_and_summarize(task_id, file_url, cancel)

    def _transcribe_and_summarize(self, task_id: str, audio_url: str,
                                  cancel: threading.Event, key: str | None = None) -> Task:
        try:
            text = self.transcriber.transcribe(audio_url, cancel)
        except TranscriptionError:
            if key:
                self.object_store.delete(key)
            raise
        self._update(task_id, content=text)
        summary = self.summarizer.request(text, self._llm_config())
        return self._update(task_id, summary=summary, status=TaskStatus.completed.value)

    # -- Control --

    def cancel(self, task_id: str) -> Task:
        task = self._get(task_id)
        with self._active_lock:
            event = self._active.get(task_id)
        if event is None:
            raise PreconditionError(f"Task {task_id} has no pipeline in flight")
        event.set()
        logger.info("Task %s: cancellation requested", task_id)
        return task

    def submit(self, operation: Callable[..., Task], task_id: str, *args) -> Task:
        """Run ``operation`` on a daemon thread; the outcome lands in the task record."""
        task = self._get(task_id)
        if self.is_running(task_id):
            raise PreconditionError(f"Task {task_id} is already being processed")

        def _do_run():
            try:
                operation(task_id, *args)
            except PipelineError as e:
                logger.error("Background %s for %s failed: %s", operation.__name__, task_id, e)
            except Exception:
                logger.exception("Background %s for %s crashed", operation.__name__, task_id)

        threading.Thread(target=_do_run, daemon=True).start()
        return task

    def delete_task(self, task_id: str):
        """Delete the record and reclaim its local and remote audio."""
        task = self._get(task_id)
        is_live = task.type == TaskType.live.value
        with self._active_lock:
            event = self._active.get(task_id)
            if event is not None:
                event.set()
                # An upload in flight can land after the delete below.
                if is_live:
                    self._reclaim_on_exit.add(task_id)
        self.db.delete_task(task_id)
        if is_live:
            self._reclaim_audio(task_id)
        logger.info("Task %s deleted", task_id)

    def _reclaim_audio(self, task_id: str):
        self.audio.discard(task_id)
        self.object_store.delete(object_key(task_id, self.audio.ext))

    def transcribe_file(self, local_path: str | Path) -> str:
        """Ad-hoc transcription of an uploaded file; nothing is kept afterwards."""
        local_path = Path(local_path)
        key = f"{config.ADHOC_KEY_PREFIX}/{uuid.uuid4().hex}{local_path.suffix}"
        uploaded = False
        try:
            audio_url = self.object_store.put(local_path, key)
            uploaded = True
            return self.transcriber.transcribe(audio_url)
        finally:
            if uploaded:
                self.object_store.delete(key)
            try:
                local_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s: %s", local_path, e)
