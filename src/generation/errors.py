"""Error taxonomy for the generation workflow."""

from __future__ import annotations

from typing import Optional, Sequence


class GenerationWorkflowError(Exception):
    """Base class for every failure surfaced by the generation core."""

    code = "generation_workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GenerationWorkflowError):
    """Bad user input. Recoverable by re-prompting, never retried automatically."""

    code = "validation_error"

    def __init__(self, fields: Sequence[str], message: Optional[str] = None) -> None:
        self.fields = list(fields)
        super().__init__(message or f"invalid_fields: {', '.join(self.fields)}")

    @property
    def field(self) -> str:
        return self.fields[0] if self.fields else ""


class UnauthenticatedError(GenerationWorkflowError):
    code = "unauthenticated"

    def __init__(self, message: str = "authentication_required") -> None:
        super().__init__(message)


class GenerationError(GenerationWorkflowError):
    """The external generation API rejected the request.

    ``status_code`` and ``message`` are the upstream values, kept verbatim.
    """

    code = "generation_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, prompt_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.prompt_id = prompt_id


class TransferError(GenerationWorkflowError):
    """Download or upload of a single media item failed."""

    code = "transfer_error"

    def __init__(self, message: str, *, stage: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.url = url


class PersistenceError(GenerationWorkflowError):
    code = "persistence_error"


class RecordNotFoundError(GenerationWorkflowError):
    code = "record_not_found"

    def __init__(self, table: str, row_id: str) -> None:
        super().__init__(f"{table}_not_found: {row_id}")
        self.table = table
        self.row_id = row_id


class NoOutputError(GenerationWorkflowError):
    """The API call succeeded but no usable media came out of it."""

    code = "no_output"

    def __init__(self, message: str, *, reason: str, prompt_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.prompt_id = prompt_id


class PollingTransientError(GenerationWorkflowError):
    """A single status query failed. Polling continues on the next tick."""

    code = "polling_transient_error"


class InvalidStatusTransition(GenerationWorkflowError):
    code = "invalid_status_transition"

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(f"{entity}_status_transition_rejected: {current} -> {target}")
        self.entity = entity
        self.current = current
        self.target = target
