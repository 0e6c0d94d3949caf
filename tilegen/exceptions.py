"""Exceptions raised by the tile generation pipeline."""

from typing import Optional


class TileGenerationError(Exception):
    """Base class for tile generation failures."""


class MissingPrerequisiteError(TileGenerationError):
    """A neighbor tile required for compositing does not exist yet."""

    def __init__(self, position, missing: list):
        self.position = position
        self.missing = missing
        names = ", ".join(str(p) for p in missing)
        super().__init__(f"Cannot generate {position}: missing neighbor tile(s) {names}")


class TransientServiceError(TileGenerationError):
    """An external service call failed in a way that may succeed on retry.

    Covers non-success status codes, malformed bodies, empty result lists,
    transport errors and timeouts.
    """

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")


class ExhaustedRetriesError(TileGenerationError):
    """A scheduled job failed on every allowed attempt."""

    def __init__(self, job_id: str, attempts: int, last_error: Optional[BaseException] = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Job {job_id} failed after {attempts} attempts: {last_error!r}")
