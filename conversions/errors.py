"""
Error taxonomy for the conversion pipeline.

Each error carries the wire ``code`` reported to callers and the HTTP status
the API maps it to. Trigger-driven stages have no caller; for them the error
is recorded on the job's status record and then re-raised to the worker.
"""


class PipelineError(Exception):
    code = "internal"
    http_status = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(PipelineError):
    """Bad or missing caller input."""

    code = "invalid-argument"
    http_status = 400


class NotFoundError(PipelineError):
    """A referenced job or status record does not exist."""

    code = "not-found"
    http_status = 404


class ConflictError(PipelineError):
    """A claimed identifier is already taken."""

    code = "already-exists"
    http_status = 409


class EncodeError(PipelineError):
    """The external encoder failed; ``stderr`` holds the tail of its diagnostics."""

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self):
        if self.stderr:
            return f"{self.message}: {self.stderr}"
        return self.message


class UpstreamServiceError(PipelineError):
    """The remote recognition service failed or answered with an unusable body."""

    http_status = 502

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
