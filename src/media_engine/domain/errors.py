"""Exception hierarchy for the generation engine."""


class MediaEngineError(Exception):
    """Base class for all engine errors."""


class TaskValidationError(MediaEngineError):
    """Raised when a task is missing required input. Never retried."""


class TaskNotFoundError(MediaEngineError):
    """Raised when a task id is unknown to the repository."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class UpstreamError(MediaEngineError):
    """Semantic failure reported by an upstream AI service."""


class AnalysisError(UpstreamError):
    """The analysis call returned an aborted or unparsable payload."""


class GenerationError(UpstreamError):
    """An image, video, or speech generation attempt failed."""


class DownloadError(MediaEngineError):
    """A download finished with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MediaProcessingError(MediaEngineError):
    """An ffmpeg or ffprobe invocation failed."""

    def __init__(
        self,
        message: str,
        argv: list[str] | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.argv = argv or []
        self.returncode = returncode
        self.stderr = stderr


class StorageError(MediaEngineError):
    """An upload to blob storage failed."""


class QueryInProgressError(MediaEngineError):
    """Another status query for the same task is still running."""

    def __init__(self, task_id: str) -> None:
        super().__init__("task query in progress")
        self.task_id = task_id
