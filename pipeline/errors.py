class PipelineError(Exception):
    """Base class for failures surfaced by the pipeline as ``{"error": ...}``."""

    status_code = 500


class ConfigError(PipelineError):
    """Required credentials are missing. Never retried automatically."""


class NotFoundError(PipelineError):
    """A local resource the current attempt depends on does not exist."""


class UploadError(PipelineError):
    pass


class RemoteError(PipelineError):
    def __init__(self, message: str, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body


class EmptyResponseError(PipelineError):
    pass


class PollTimeoutError(PipelineError, TimeoutError):
    """The transcription job did not finish within the polling ceiling.

    Safe to retry from scratch: object keys are derived from the task id.
    """


class TranscriptionError(PipelineError):
    """The remote service reported the job as FAILED."""


class CancelledError(PipelineError):
    pass


class PreconditionError(PipelineError):
    status_code = 400


class TaskNotFoundError(PipelineError):
    status_code = 404
