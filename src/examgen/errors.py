"""Exception hierarchy shared by the exam generation pipeline."""
from __future__ import annotations

from typing import Sequence


class ExamGenError(RuntimeError):
    """Base class for every pipeline failure surfaced to API clients.

    ``error`` is a short, stable label suitable for the ``error`` field of an
    HTTP error body; ``details`` carries the diagnostic message.
    """

    error = "Failed to generate exam"

    def __init__(self, details: str, *, cause: BaseException | None = None) -> None:
        super().__init__(details)
        self.details = details
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class UnsupportedFormat(ExamGenError):
    """Raised when an uploaded file has an extension outside the supported set."""

    error = "Unsupported file type"

    def __init__(self, extension: str) -> None:
        super().__init__(f"Unsupported file type: {extension or '<none>'}")
        self.extension = extension


class ExtractionFailure(ExamGenError):
    """Raised when a text extraction backend fails for a supported format."""

    error = "Failed to extract text"

    def __init__(self, extension: str, cause: BaseException | str) -> None:
        message = str(cause) or cause.__class__.__name__
        super().__init__(
            f"Failed to extract text from {extension} file: {message}",
            cause=cause if isinstance(cause, BaseException) else None,
        )
        self.extension = extension


class GenerationFailure(ExamGenError):
    """Raised when the generative model call errors or returns no content."""

    error = "Failed to generate exam"

    def __init__(self, cause: BaseException | str) -> None:
        message = str(cause) or cause.__class__.__name__
        super().__init__(
            f"Generation request failed: {message}",
            cause=cause if isinstance(cause, BaseException) else None,
        )


class MalformedResponse(ExamGenError):
    """Raised when model output cannot be parsed or fails shape validation."""

    error = "Failed to parse model response"

    def __init__(self, cause: BaseException | str, raw_snippet: str) -> None:
        message = str(cause) or cause.__class__.__name__
        super().__init__(
            f"Failed to parse AI response as JSON: {message}",
            cause=cause if isinstance(cause, BaseException) else None,
        )
        self.raw_snippet = raw_snippet


class OrchestrationFailure(ExamGenError):
    """Aggregate failure raised when one or more chunk pipelines fail."""

    error = "Failed to generate exam"

    def __init__(self, failures: Sequence[tuple[int, BaseException]], total: int) -> None:
        if not failures:
            raise ValueError("OrchestrationFailure requires at least one failure")
        indices = ", ".join(str(index) for index, _ in failures)
        first_error = failures[0][1]
        super().__init__(
            f"{len(failures)} of {total} chunks failed (chunks: {indices}): {first_error}",
            cause=first_error,
        )
        self.failures = list(failures)
        self.total = total

    @property
    def failed_indices(self) -> list[int]:
        return [index for index, _ in self.failures]


class InvalidRequest(ExamGenError):
    """Raised when a request is missing a file or carries unusable options."""

    error = "Invalid request"


class UnknownUpload(ExamGenError):
    """Raised when a file identifier does not reference a stored upload."""

    error = "Unknown file"

    def __init__(self, file_id: str) -> None:
        super().__init__(f"No uploaded file with id {file_id!r} (expired or already used)")
        self.file_id = file_id


__all__ = [
    "ExamGenError",
    "ExtractionFailure",
    "GenerationFailure",
    "InvalidRequest",
    "MalformedResponse",
    "OrchestrationFailure",
    "UnknownUpload",
    "UnsupportedFormat",
]
