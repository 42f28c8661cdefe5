import logging
import shutil
import uuid
from pathlib import Path

from fastapi import APIRouter, File, Response, UploadFile
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from db.database import Database
from db.models import LLMConfig, Task
from pipeline.errors import PreconditionError, TaskNotFoundError
from pipeline.orchestrator import TaskOrchestrator
from processing.summarizer import Summarizer
from storage.object_store import ObjectStore, resolve_settings

logger = logging.getLogger(__name__)


class KnownUrlRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    task_id: str = ""
    file_url: str = ""


class LLMCheckRequest(BaseModel):
    config: dict | None = None
    question: str | None = None


def create_router(db: Database, orchestrator: TaskOrchestrator,
                  object_store: ObjectStore, summarizer: Summarizer) -> APIRouter:
    router = APIRouter()

    def _document(task: Task) -> dict:
        return task.to_document()

    def _run(operation, task_id: str, background: bool, *args) -> dict:
        if background:
            return _document(orchestrator.submit(operation, task_id, *args))
        return _document(operation(task_id, *args))

    # -- Status --

    @router.get("/status")
    def get_status():
        return {
            "objectStorage": object_store.available,
            "llmConfigured": LLMConfig(**(db.get_config("llm") or {})).is_complete(),
            "activeTasks": orchestrator.active_count,
        }

    # -- Tasks CRUD --

    @router.get("/tasks")
    def list_tasks():
        return [_document(t) for t in db.list_tasks()]

    @router.get("/tasks/{task_id}")
    def get_task(task_id: str):
        task = db.get_task(task_id)
        if not task:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return _document(task)

    @router.post("/tasks", status_code=201)
    def create_task(body: Task):
        return _document(db.save_task(body))

    @router.put("/tasks/{task_id}")
    def update_task(task_id: str, body: Task):
        if body.id != task_id:
            raise PreconditionError("Task id in path and body do not match")
        if not db.get_task(task_id):
            raise TaskNotFoundError(f"Task {task_id} not found")
        return _document(db.save_task(body))

    @router.delete("/tasks/{task_id}", status_code=204)
    def delete_task(task_id: str):
        orchestrator.delete_task(task_id)
        return Response(status_code=204)

    # -- Capture --

    @router.post("/start-recording/{task_id}")
    def start_recording(task_id: str):
        return _document(orchestrator.start_capture(task_id))

    @router.post("/stop-recording/{task_id}")
    def stop_recording(task_id: str):
        return _document(orchestrator.stop_capture(task_id))

    @router.post("/recording-failed/{task_id}")
    def recording_failed(task_id: str):
        return _document(orchestrator.capture_failed(task_id))

    @router.post("/upload-audio/{task_id}")
    def upload_audio(task_id: str, audio: UploadFile = File(...)):
        orchestrator.live_task(task_id)
        path = orchestrator.audio.save_upload(task_id, audio.file)
        orchestrator.record_upload(task_id)
        return {"filename": path.name, "size": path.stat().st_size}

    @router.post("/upload-audio-segment/{task_id}")
    def upload_audio_segment(task_id: str, audio: UploadFile = File(...)):
        orchestrator.live_task(task_id)
        orchestrator.audio.save_segment(task_id, audio.file)
        filename = orchestrator.audio.merge(task_id)
        orchestrator.record_upload(task_id)
        path = orchestrator.audio.canonical_path(task_id)
        return {"filename": filename, "size": path.stat().st_size}

    # -- Pipeline --

    @router.post("/process-webpage/{task_id}")
    def process_webpage(task_id: str, background: bool = False):
        return _run(orchestrator.summarize_webpage, task_id, background)

    @router.post("/generate-audio-summary/{task_id}")
    def generate_audio_summary(task_id: str, background: bool = False):
        if background:
            orchestrator.require_recorded_audio(task_id)
        return _run(orchestrator.summarize_live_audio, task_id, background)

    @router.post("/process-audio-summary")
    def process_audio_summary(body: KnownUrlRequest, background: bool = False):
        if not body.task_id or not body.file_url:
            raise PreconditionError("taskId and fileUrl are required")
        return _run(orchestrator.process_with_known_url, body.task_id, background, body.file_url)

    @router.post("/cancel/{task_id}")
    def cancel_task(task_id: str):
        return _document(orchestrator.cancel(task_id))

    @router.post("/transcribe-audio")
    def transcribe_audio(audio: UploadFile = File(...)):
        suffix = Path(audio.filename or "").suffix or orchestrator.audio.ext
        path = orchestrator.audio.audio_dir / f"transcription_{uuid.uuid4().hex}{suffix}"
        with open(path, "wb") as f:
            shutil.copyfileobj(audio.file, f)
        return {"text": orchestrator.transcribe_file(path)}

    # -- Configuration --

    @router.get("/llm-config")
    def get_llm_config():
        return db.get_config("llm")

    @router.post("/llm-config", status_code=201)
    def save_llm_config(body: LLMConfig):
        return db.set_config("llm", body.model_dump(by_alias=True))

    @router.get("/oss-config")
    def get_oss_config():
        return db.get_config("oss") or {}

    @router.post("/oss-config")
    def save_oss_config(body: dict):
        settings = resolve_settings(body, environ={})
        if not settings.is_complete():
            raise PreconditionError("region, accessKeyId, accessKeySecret and bucket are required")
        db.set_config("oss", settings.model_dump(by_alias=True))
        object_store.reset()
        return {"message": "Object storage configuration saved"}

    @router.post("/reset-oss-client")
    def reset_oss_client():
        object_store.reset()
        return {"success": True, "message": "Object storage client reset"}

    @router.get("/test-oss-connection")
    def test_oss_connection():
        url = object_store.check_connection()
        return {"success": True, "message": "Object storage upload with public-read succeeded", "url": url}

    @router.post("/test-llm")
    def test_llm(body: LLMCheckRequest):
        try:
            llm = LLMConfig(**(body.config or db.get_config("llm") or {}))
        except ValidationError as e:
            raise PreconditionError(f"Invalid LLM configuration: {e}") from e
        return {"response": summarizer.ask(body.question, llm)}

    return router
