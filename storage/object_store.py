import logging
import os
import threading
import time
from pathlib import Path
from urllib.parse import quote

import oss2

import config
from db.models import OSSConfig
from pipeline.errors import UploadError

logger = logging.getLogger(__name__)

ENV_KEYS = {
    "region": "OSS_REGION",
    "access_key_id": "OSS_ACCESS_KEY_ID",
    "access_key_secret": "OSS_ACCESS_KEY_SECRET",
    "bucket": "OSS_BUCKET",
}

# Field names the stored document may use, newest first.
STORED_KEYS = {
    "region": ("region",),
    "access_key_id": ("accessKeyId", "access_id"),
    "access_key_secret": ("accessKeySecret", "access_secret"),
    "bucket": ("bucket",),
}

PUBLIC_READ_HEADERS = {"x-oss-object-acl": oss2.OBJECT_ACL_PUBLIC_READ}


def object_key(task_id: str, ext: str = config.AUDIO_EXT) -> str:
    return f"{config.OBJECT_KEY_PREFIX}/{task_id}{ext}"


def resolve_settings(stored: dict | None, environ=None) -> OSSConfig:
    """Merge credentials field by field; environment variables win over the stored document."""
    environ = os.environ if environ is None else environ
    stored = stored or {}
    values = {}
    for field, env_key in ENV_KEYS.items():
        value = environ.get(env_key)
        if not value:
            value = next((stored[k] for k in STORED_KEYS[field] if stored.get(k)), "")
        values[field] = value
    return OSSConfig(**values)


class ObjectStore:
    def __init__(self, db, environ=None):
        self._db = db
        self._environ = environ
        self._lock = threading.Lock()
        self._resolved = False
        self._bucket: oss2.Bucket | None = None
        self._settings: OSSConfig | None = None

    def acquire(self) -> oss2.Bucket | None:
        """Return the connected bucket, or None if storage is not configured. Never raises."""
        if self._resolved:
            return self._bucket
        with self._lock:
            if self._resolved:
                return self._bucket
            self._bucket = self._build()
            self._resolved = True
            return self._bucket

    def _build(self) -> oss2.Bucket | None:
        try:
            settings = resolve_settings(self._db.get_config("oss"), self._environ)
        except Exception as e:
            logger.error("Could not read object storage configuration: %s", e)
            return None

        logger.info(
            "Object storage config: region=%s accessKeyId=%s accessKeySecret=%s bucket=%s",
            settings.region or "unset",
            "set" if settings.access_key_id else "unset",
            "set" if settings.access_key_secret else "unset",
            settings.bucket or "unset",
        )
        if not settings.is_complete():
            logger.warning("Object storage configuration incomplete, uploads disabled")
            return None

        try:
            auth = oss2.Auth(settings.access_key_id, settings.access_key_secret)
            bucket = oss2.Bucket(auth, _endpoint(settings.region), settings.bucket)
        except Exception as e:
            logger.error("Failed to create object storage client: %s", e)
            return None
        self._settings = settings
        logger.info("Object storage client ready for bucket %s", settings.bucket)
        return bucket

    def reset(self):
        with self._lock:
            logger.info("Resetting object storage client")
            self._bucket = None
            self._settings = None
            self._resolved = False

    @property
    def available(self) -> bool:
        return self.acquire() is not None

    def public_url(self, key: str) -> str:
        settings = self._settings
        if settings is None:
            raise UploadError("Object storage is not configured")
        host = _endpoint(settings.region).split("://", 1)[1]
        return f"https://{settings.bucket}.{host}/{quote(key)}"

    def put(self, local_path: str | Path, key: str) -> str:
        bucket = self.acquire()
        if bucket is None:
            raise UploadError("Object storage is not configured, check OSS_* settings")

        local_path = Path(local_path)
        if not local_path.is_file():
            raise UploadError(f"Local file not found: {local_path}")

        logger.info("Uploading %s to %s", local_path.name, key)
        try:
            result = bucket.put_object_from_file(key, str(local_path), headers=PUBLIC_READ_HEADERS)
        except (oss2.exceptions.OssError, OSError) as e:
            raise UploadError(f"Upload to object storage failed: {e}") from e

        url = self.public_url(key)
        logger.info("Uploaded %s (status %s)", url, getattr(result, "status", "?"))
        return url

    def delete(self, key: str):
        bucket = self.acquire()
        if bucket is None:
            return
        try:
            bucket.delete_object(key)
            logger.info("Deleted remote object %s", key)
        except Exception as e:
            logger.warning("Could not delete remote object %s: %s", key, e)

    def check_connection(self) -> str:
        """Upload and remove a small public probe object; return its URL."""
        key = f"{config.PROBE_KEY_PREFIX}/probe-{int(time.time() * 1000)}.txt"
        bucket = self.acquire()
        if bucket is None:
            raise UploadError("Object storage is not configured, check OSS_* settings")
        try:
            bucket.put_object(key, b"LiveDigest object storage probe.", headers=PUBLIC_READ_HEADERS)
        except oss2.exceptions.OssError as e:
            raise UploadError(f"Object storage probe failed: {e}") from e
        url = self.public_url(key)
        self.delete(key)
        return url


def _endpoint(region: str) -> str:
    region = region.strip()
    if region.startswith("http://") or region.startswith("https://"):
        return region.rstrip("/")
    if not region.startswith("oss-"):
        region = f"oss-{region}"
    if not region.endswith(".aliyuncs.com"):
        region = f"{region}.aliyuncs.com"
    return f"https://{region}"
