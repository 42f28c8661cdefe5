from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tasks (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL DEFAULT '',
    type            TEXT NOT NULL,
    url             TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL DEFAULT 'pending',
    content         TEXT,
    summary         TEXT,
    audio_file      TEXT,
    is_recording    INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at      TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS config (
    name            TEXT PRIMARY KEY,
    document        TEXT NOT NULL,
    updated_at      TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

TASK_FIELDS = (
    "name", "type", "url", "status", "content", "summary", "audio_file", "is_recording",
)


class TaskType(str, Enum):
    webpage = "webpage"
    # Stored for clients that create video tasks; no pipeline operation runs them.
    video = "video"
    live = "live"


class TaskStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class Task(BaseModel):
    """A task document. Serialized with camelCase keys (``audioFile``, ``isRecording``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    id: str
    name: str = ""
    type: TaskType
    url: str = ""
    status: TaskStatus = TaskStatus.pending.value
    content: str | None = None
    summary: str | None = None
    audio_file: str | None = None
    is_recording: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class LLMConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    base_url: str = ""
    model: str = ""
    api_key: str = ""

    def is_complete(self) -> bool:
        return bool(self.base_url and self.model and self.api_key)


class OSSConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    region: str = ""
    access_key_id: str = ""
    access_key_secret: str = ""
    bucket: str = ""

    def is_complete(self) -> bool:
        return bool(self.region and self.access_key_id and self.access_key_secret and self.bucket)
