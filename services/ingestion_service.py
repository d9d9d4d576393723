"""
Candidate ingestion: single records, batches and parsed resumes.

Per record: validate -> resolve identity -> (diff + sparse update | insert)
-> audit entry -> side effects. Each record stands alone; a batch never rolls
back records that already went through.

When two ingestions of a brand-new email race, both may resolve NotFound.
The loser's insert hits the unique index, raises ConflictError, and is
retried once as an update of the winner's record, so the outcome is always
one 'created' and one 'updated'.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.candidate import Candidate
from services.audit_service import log_candidate_created, log_candidate_updated
from services.candidate_service import get_candidate, insert_candidate, update_candidate
from services.diffing import TRACKED_FIELDS, diff, normalize_value
from services.dispatcher import EventKind
from services.errors import CandidateNotFoundError, ConflictError, PipelineError, ValidationError
from services.identity_service import Found, normalize_email, resolve_identity
from services.job_service import get_job
from services.openai_service import extract_candidate_fields, sanitize_resume_text
from services.stages import normalize_stage

logger = logging.getLogger(__name__)

RESUME_UPLOAD = "resume_upload"
BATCH_UPLOAD = "batch_upload"

CREATED = "created"
UPDATED = "updated"
REJECTED = "rejected"

_TEXT_FIELDS = ("phone", "resume_text", "resume_url", "job_id")
# Resolve + write attempts per record: the second one covers a lost insert race.
_MAX_ATTEMPTS = 2
# Stage moves must go through stage_service so they are audited; an
# ingested status only seeds the stage of a new record.
_UPDATE_FIELDS = tuple(name for name in TRACKED_FIELDS if name != "status")


@dataclass
class IngestResult:
    outcome: str
    email: str
    id: Optional[str] = None
    full_name: Optional[str] = None
    changed_fields: List[str] = field(default_factory=list)
    error: Optional[str] = None
    is_duplicate: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome != REJECTED

    def to_dict(self) -> Dict[str, Any]:
        if not self.succeeded:
            data = {"email": self.email, "error": self.error}
            if self.is_duplicate:
                data["isDuplicate"] = True
            return data
        data = {"id": self.id, "email": self.email, "full_name": self.full_name}
        if self.outcome == UPDATED:
            data["updated"] = True
            data["changed_fields"] = list(self.changed_fields)
        return data


@dataclass
class BatchResult:
    succeeded: List[IngestResult] = field(default_factory=list)
    failed: List[IngestResult] = field(default_factory=list)

    def add(self, result: IngestResult) -> None:
        (self.succeeded if result.succeeded else self.failed).append(result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "results": {
                "successCount": len(self.succeeded),
                "failedCount": len(self.failed),
                "successfulCandidates": [r.to_dict() for r in self.succeeded],
                "failedCandidates": [r.to_dict() for r in self.failed],
            },
        }


def _rejected(email: Any, error: str, is_duplicate: bool = False) -> IngestResult:
    shown = email if isinstance(email, str) and email.strip() else "unknown"
    return IngestResult(outcome=REJECTED, email=shown, error=error, is_duplicate=is_duplicate)


def validate_candidate_data(db: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Check and coerce one input record. Returns the fields to write, with the
    email normalized. Unknown job ids are dropped rather than rejected.
    """
    full_name = data.get("full_name")
    email = data.get("email")
    if not isinstance(full_name, str) or not full_name.strip() or not email:
        raise ValidationError("Missing required fields (full_name or email)")

    fields = {"full_name": full_name.strip(), "email": normalize_email(email)}

    experience = data.get("experience_years")
    if normalize_value(experience) is not None:
        if isinstance(experience, bool):
            raise ValidationError("experience_years must be a number", field="experience_years")
        try:
            fields["experience_years"] = float(experience)
        except (TypeError, ValueError):
            raise ValidationError("experience_years must be a number", field="experience_years")
        if fields["experience_years"] < 0:
            raise ValidationError("experience_years cannot be negative", field="experience_years")

    for name in _TEXT_FIELDS:
        value = data.get(name)
        if normalize_value(value) is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string", field=name)
        fields[name] = value.strip()

    skills = data.get("skills")
    if isinstance(skills, (list, tuple)):
        skills = ", ".join(str(s).strip() for s in skills if str(s).strip())
    if normalize_value(skills) is not None:
        if not isinstance(skills, str):
            raise ValidationError("skills must be a comma-separated string", field="skills")
        fields["skills"] = skills.strip()

    if "resume_text" in fields:
        fields["resume_text"] = sanitize_resume_text(fields["resume_text"])

    if normalize_value(data.get("status")) is not None:
        fields["status"] = normalize_stage(data["status"])

    if "job_id" in fields and get_job(db, fields["job_id"]) is None:
        logger.info("Job %s not found; ingesting %s without job assignment", fields["job_id"], fields["email"])
        del fields["job_id"]

    return fields


def _side_effect_context(candidate: Candidate) -> Dict[str, Any]:
    return {
        "candidate_name": candidate.full_name,
        "candidate_email": candidate.email,
        "job_position": candidate.job.position if candidate.job is not None else None,
    }


def _dispatch(dispatcher, candidate_id: str, event_kind: str, context: Dict[str, Any]) -> None:
    if dispatcher is None:
        return
    dispatcher.dispatch(candidate_id, event_kind, context)
    dispatcher.dispatch(candidate_id, EventKind.MATCH_CANDIDATE, context)


def _create(db: Session, fields: Dict[str, Any], provenance: str, dispatcher) -> IngestResult:
    candidate = insert_candidate(db, fields)
    try:
        log_candidate_created(db, candidate, provenance)
    except SQLAlchemyError:
        # the candidate is committed; report it as created and leave the gap in the log
        db.rollback()
        logger.exception("Candidate %s created but its change log entry was not written", candidate.id)
    _dispatch(dispatcher, candidate.id, EventKind.NOTIFY_INGESTED, _side_effect_context(candidate))
    return IngestResult(outcome=CREATED, id=candidate.id, email=candidate.email, full_name=candidate.full_name)


def _update(db: Session, found: Found, fields: Dict[str, Any], provenance: str, dispatcher) -> IngestResult:
    changes = diff(found.snapshot, fields, _UPDATE_FIELDS)
    if changes.has_changes:
        candidate = update_candidate(db, found.candidate_id, changes.new_values)
        try:
            log_candidate_updated(db, candidate, changes, provenance)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Candidate %s updated but its change log entry was not written", candidate.id)
    else:
        candidate = get_candidate(db, found.candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(found.candidate_id)
        logger.info("Re-ingested %s without changes", candidate.email)
    _dispatch(dispatcher, candidate.id, EventKind.NOTIFY_UPDATED, _side_effect_context(candidate))
    return IngestResult(
        outcome=UPDATED,
        id=candidate.id,
        email=candidate.email,
        full_name=candidate.full_name,
        changed_fields=list(changes.changed_fields),
    )


def ingest_candidate(
    db: Session,
    data: Mapping[str, Any],
    provenance: str = RESUME_UPLOAD,
    dispatcher=None,
) -> IngestResult:
    """
    Ingest one candidate record. Returns a created/updated/rejected result;
    per-record problems never raise.
    """
    if not isinstance(data, Mapping):
        return _rejected(None, "Invalid candidate record: expected an object")

    raw_email = data.get("email")
    try:
        fields = validate_candidate_data(db, data)
    except ValidationError as exc:
        logger.warning("Rejected candidate %s: %s", raw_email or "unknown", exc)
        return _rejected(raw_email, str(exc))

    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            identity = resolve_identity(db, fields["email"])
            if isinstance(identity, Found):
                return _update(db, identity, fields, provenance, dispatcher)
            return _create(db, fields, provenance, dispatcher)
        except ConflictError:
            logger.info(
                "Insert of %s lost a race (attempt %d); retrying as update", fields["email"], attempt
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Store failure while ingesting %s: %s", fields["email"], exc)
            return _rejected(fields["email"], f"Failed to ingest candidate: {exc}")
        except PipelineError as exc:
            logger.error("Failed to ingest %s: %s", fields["email"], exc)
            return _rejected(fields["email"], str(exc))

    return _rejected(fields["email"], "Candidate with this email already exists", is_duplicate=True)


def ingest_batch(
    db: Session,
    records: Iterable[Any],
    provenance: str = BATCH_UPLOAD,
    dispatcher=None,
) -> BatchResult:
    """
    Ingest records one after another. The call itself only fails when the
    payload is not a list; each record's outcome lands in succeeded or failed.
    """
    if isinstance(records, (str, bytes, Mapping)) or records is None:
        raise ValidationError("Invalid request: candidates array required")

    records = list(records)
    logger.info("Processing batch upload of %d candidates", len(records))
    batch = BatchResult()
    for record in records:
        try:
            result = ingest_candidate(db, record, provenance=provenance, dispatcher=dispatcher)
        except Exception as exc:
            db.rollback()
            email = record.get("email") if isinstance(record, Mapping) else None
            logger.exception("Error processing candidate %s", email or "unknown")
            result = _rejected(email, str(exc) or "Unknown error")
        batch.add(result)

    logger.info(
        "Batch upload finished: %d succeeded, %d failed", len(batch.succeeded), len(batch.failed)
    )
    return batch


def ingest_resume(
    db: Session,
    resume_text: str,
    extractor: Optional[Callable[[str], Dict[str, Any]]] = None,
    job_id: Optional[str] = None,
    resume_url: Optional[str] = None,
    dispatcher=None,
    provenance: str = RESUME_UPLOAD,
) -> IngestResult:
    """
    Run the extractor over raw resume text and ingest what it returns.
    Extractor failures are reported as rejections.
    """
    extractor = extractor or extract_candidate_fields
    try:
        extracted = extractor(resume_text)
    except ValidationError as exc:
        logger.warning("Resume rejected by extractor: %s", exc)
        return _rejected(None, str(exc))
    except Exception as exc:
        logger.exception("Resume extraction failed")
        return _rejected(None, f"Resume extraction failed: {exc}")

    if not isinstance(extracted, Mapping):
        return _rejected(None, "No candidate data extracted from resume")

    data = {
        "full_name": extracted.get("full_name"),
        "email": extracted.get("email"),
        "phone": extracted.get("phone"),
        "experience_years": extracted.get("experience_years"),
        "skills": extracted.get("skills"),
        "resume_text": resume_text,
        "resume_url": resume_url,
        "job_id": job_id,
    }
    return ingest_candidate(db, data, provenance=provenance, dispatcher=dispatcher)
