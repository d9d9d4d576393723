"""
Error taxonomy for the candidate pipeline.

ValidationError   bad input, rejected before any write
ConflictError     unique email violated at insert time; ingestion recovers by updating
StoreError        any other datastore failure during a write
SideEffectError   notification/provisioning failure; only ever logged by the dispatcher
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError, ValueError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(PipelineError):
    def __init__(self, message: str, email: Optional[str] = None):
        super().__init__(message)
        self.email = email


class StoreError(PipelineError):
    pass


class CandidateNotFoundError(PipelineError):
    def __init__(self, candidate_id: str):
        super().__init__(f"Candidate {candidate_id} not found")
        self.candidate_id = candidate_id


class SideEffectError(PipelineError):
    def __init__(self, event_kind: str, candidate_id: str, cause: Exception):
        super().__init__(f"{event_kind} failed for candidate {candidate_id}: {cause}")
        self.event_kind = event_kind
        self.candidate_id = candidate_id
        self.cause = cause


class ImmutableRecordError(PipelineError):
    """Raised when something tries to rewrite or remove an audit entry."""
