import logging
import shutil
import threading
from pathlib import Path
from typing import BinaryIO

import config
from pipeline.errors import NotFoundError

logger = logging.getLogger(__name__)


class AudioFiles:
    """Reconciles capture output into one canonical ``{task_id}.webm`` per task.

    Sequential segments are joined by byte concatenation, which is only valid
    while every segment is a container-independent continuation of the same
    encoding (e.g. MediaRecorder timeslices of one stream).
    """

    def __init__(self, audio_dir: str | Path, ext: str = config.AUDIO_EXT):
        self.audio_dir = Path(audio_dir)
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        self.ext = ext
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock(self, task_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(task_id, threading.Lock())

    def canonical_name(self, task_id: str) -> str:
        return f"{task_id}{self.ext}"

    def canonical_path(self, task_id: str) -> Path:
        return self.audio_dir / self.canonical_name(task_id)

    def temp_path(self, task_id: str) -> Path:
        return self.audio_dir / f"{task_id}{config.TEMP_SUFFIX}{self.ext}"

    def has_canonical(self, task_id: str) -> bool:
        return self.canonical_path(task_id).is_file()

    def save_upload(self, task_id: str, stream: BinaryIO) -> Path:
        path = self.canonical_path(task_id)
        with self._lock(task_id), open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        logger.info("Saved recording %s (%d bytes)", path.name, path.stat().st_size)
        return path

    def save_segment(self, task_id: str, stream: BinaryIO) -> Path:
        path = self.temp_path(task_id)
        with self._lock(task_id), open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        logger.info("Saved segment %s (%d bytes)", path.name, path.stat().st_size)
        return path

    def finalize(self, task_id: str) -> str:
        """Rename the file named exactly after the task (any extension) to the canonical name."""
        with self._lock(task_id):
            if self.has_canonical(task_id):
                return self.canonical_name(task_id)
            source = next(
                (p for p in sorted(self.audio_dir.iterdir()) if p.is_file() and p.stem == task_id),
                None,
            )
            if source is None:
                raise NotFoundError(f"No recorded audio file found for task {task_id}")

            target = self.canonical_path(task_id)
            if source != target:
                source.replace(target)
                logger.info("Renamed %s -> %s", source.name, target.name)
            return target.name

    def merge(self, task_id: str) -> str:
        """Fold the pending temp segment into the canonical file and drop the segment."""
        with self._lock(task_id):
            temp = self.temp_path(task_id)
            if not temp.is_file():
                raise NotFoundError(f"No temporary audio segment for task {task_id}")

            target = self.canonical_path(task_id)
            if target.is_file():
                with open(target, "ab") as out, open(temp, "rb") as segment:
                    shutil.copyfileobj(segment, out)
                temp.unlink()
                logger.info("Appended %s to %s", temp.name, target.name)
            else:
                temp.replace(target)
                logger.info("Renamed %s -> %s", temp.name, target.name)
            return target.name

    def has_segment(self, task_id: str) -> bool:
        return self.temp_path(task_id).is_file()

    def discard(self, task_id: str):
        for path in (self.canonical_path(task_id), self.temp_path(task_id)):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
        with self._guard:
            self._locks.pop(task_id, None)
