from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.candidate import Candidate
from services.diffing import TRACKED_FIELDS
from services.errors import CandidateNotFoundError, ConflictError, StoreError
from services.identity_service import normalize_email
from services.stages import INTAKE

logger = logging.getLogger(__name__)


def candidate_snapshot(candidate: Candidate) -> Dict[str, Any]:
    """Plain-dict view of the tracked fields (plus email) of a candidate."""
    snap = {name: getattr(candidate, name) for name in TRACKED_FIELDS}
    snap["email"] = candidate.email
    return snap


def _commit(db: Session, action: str, email: Optional[str] = None) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Unique constraint hit while trying to %s %s", action, email)
        raise ConflictError(f"Candidate with email {email} already exists", email=email) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Store failure while trying to %s %s: %s", action, email, exc)
        raise StoreError(f"Failed to {action} candidate: {exc}") from exc


def insert_candidate(db: Session, fields: Dict[str, Any]) -> Candidate:
    """
    Creates a new candidate. Stage defaults to 'intake'.
    Raises ConflictError if a live candidate already holds the email.
    """
    email = normalize_email(fields.get("email"))
    cand = Candidate(email=email, status=fields.get("status") or INTAKE)
    for name in TRACKED_FIELDS:
        if name != "status" and fields.get(name) is not None:
            setattr(cand, name, fields[name])
    db.add(cand)
    _commit(db, "insert", email)
    db.refresh(cand)
    logger.info("Inserted candidate %s (%s)", cand.id, email)
    return cand


def update_candidate(db: Session, candidate_id: str, fields: Dict[str, Any]) -> Candidate:
    """Sparse overwrite: only tracked fields present in `fields` are written."""
    cand = get_candidate(db, candidate_id)
    if cand is None:
        raise CandidateNotFoundError(candidate_id)
    for name in TRACKED_FIELDS:
        if name in fields:
            setattr(cand, name, fields[name])
    cand.updated_at = datetime.utcnow()
    db.add(cand)
    _commit(db, "update", cand.email)
    db.refresh(cand)
    logger.info("Updated candidate %s (%s)", cand.id, cand.email)
    return cand


def set_candidate_stage(db: Session, candidate: Candidate, new_stage: str) -> None:
    """Stages the status write; the caller commits it together with its audit entry."""
    candidate.status = new_stage
    candidate.updated_at = datetime.utcnow()
    db.add(candidate)


def get_candidate(db: Session, candidate_id: str, include_archived: bool = False) -> Optional[Candidate]:
    stmt = select(Candidate).where(Candidate.id == candidate_id)
    if not include_archived:
        stmt = stmt.where(Candidate.archived_at.is_(None))
    return db.execute(stmt).scalars().first()


def list_candidates(
    db: Session,
    stage: Optional[str] = None,
    job_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Candidate]:
    stmt = select(Candidate).where(Candidate.archived_at.is_(None))
    if stage:
        stmt = stmt.where(Candidate.status == stage)
    if job_id:
        stmt = stmt.where(Candidate.job_id == job_id)
    stmt = stmt.order_by(Candidate.created_at.desc()).offset(offset).limit(max(1, min(limit, 500)))
    return db.execute(stmt).scalars().all()


def archive_candidate(db: Session, candidate_id: str) -> Candidate:
    """
    Soft delete. The row and its logs are kept; the email becomes free for a
    future ingestion, which will create a fresh candidate.
    """
    cand = get_candidate(db, candidate_id)
    if cand is None:
        raise CandidateNotFoundError(candidate_id)
    cand.archived_at = datetime.utcnow()
    db.add(cand)
    _commit(db, "archive", cand.email)
    logger.info("Archived candidate %s (%s)", cand.id, cand.email)
    return cand


def record_match_result(db: Session, candidate_id: str, score: Optional[float], analysis: Any) -> Candidate:
    """Stores an AI match report. Match data is derived, so it is not audited."""
    cand = get_candidate(db, candidate_id)
    if cand is None:
        raise CandidateNotFoundError(candidate_id)
    cand.ai_match_score = score
    cand.ai_match_analysis = analysis
    db.add(cand)
    _commit(db, "record match for", cand.email)
    return cand
