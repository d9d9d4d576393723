"""
Audit trail for candidates.

Two append-only streams:
- candidate_change_logs: field-level create/update history from ingestion
- pipeline_activity_logs: one entry per stage transition

Writers only ever INSERT. The models themselves refuse UPDATE and DELETE.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.candidate import Candidate
from models.change_log import CandidateChangeLog
from models.pipeline_activity import PipelineActivityLog
from services.diffing import FieldDiff
from services.stages import stage_label

# Fields recorded on a 'created' entry.
CREATED_FIELDS = ("full_name", "email", "phone", "skills", "experience_years")


@dataclass
class ActivityPage:
    items: List[PipelineActivityLog]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _finish(db: Session, entry, commit: bool):
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def log_candidate_created(db: Session, candidate: Candidate, provenance: str, commit: bool = True) -> CandidateChangeLog:
    entry = CandidateChangeLog(
        candidate_id=candidate.id,
        candidate_email=candidate.email,
        action="created",
        changed_fields=None,
        old_values=None,
        new_values={name: getattr(candidate, name) for name in CREATED_FIELDS},
        source=provenance,
    )
    return _finish(db, entry, commit)


def log_candidate_updated(
    db: Session, candidate: Candidate, changes: FieldDiff, provenance: str, commit: bool = True
) -> CandidateChangeLog:
    if not changes.has_changes:
        raise ValueError("Refusing to log an update without changed fields")
    entry = CandidateChangeLog(
        candidate_id=candidate.id,
        candidate_email=candidate.email,
        action="updated",
        changed_fields=list(changes.changed_fields),
        old_values=dict(changes.old_values),
        new_values=dict(changes.new_values),
        source=provenance,
    )
    return _finish(db, entry, commit)


def log_stage_change(
    db: Session,
    candidate: Candidate,
    old_stage: Optional[str],
    new_stage: str,
    actor: Optional[str],
    interview_score: Optional[float] = None,
    interview_details: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> PipelineActivityLog:
    job = candidate.job
    entry = PipelineActivityLog(
        candidate_id=candidate.id,
        candidate_name=candidate.full_name,
        candidate_email=candidate.email,
        job_id=candidate.job_id,
        job_position=job.position if job is not None else None,
        old_stage=old_stage,
        old_stage_label=stage_label(old_stage),
        new_stage=new_stage,
        new_stage_label=stage_label(new_stage),
        changed_by=actor,
        interview_score=interview_score,
        interview_details=interview_details,
    )
    return _finish(db, entry, commit)


def list_change_logs(
    db: Session,
    candidate_id: Optional[str] = None,
    candidate_email: Optional[str] = None,
    limit: int = 50,
) -> List[CandidateChangeLog]:
    stmt = select(CandidateChangeLog)
    if candidate_id:
        stmt = stmt.where(CandidateChangeLog.candidate_id == candidate_id)
    if candidate_email:
        stmt = stmt.where(CandidateChangeLog.candidate_email == candidate_email.strip().lower())
    stmt = stmt.order_by(CandidateChangeLog.created_at.desc(), CandidateChangeLog.id.desc()).limit(limit)
    return db.execute(stmt).scalars().all()


def list_activity(
    db: Session,
    candidate_id: Optional[str] = None,
    candidate_email: Optional[str] = None,
    candidate_name: Optional[str] = None,
    job_position: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> ActivityPage:
    """
    Newest-first page of stage transitions. Email, name and position filters
    are case-insensitive substring matches.
    """
    page = max(1, page)
    limit = max(1, min(limit, 500))

    filters = []
    if candidate_id:
        filters.append(PipelineActivityLog.candidate_id == candidate_id)
    if candidate_email:
        filters.append(PipelineActivityLog.candidate_email.ilike(f"%{candidate_email}%"))
    if candidate_name:
        filters.append(PipelineActivityLog.candidate_name.ilike(f"%{candidate_name}%"))
    if job_position:
        filters.append(PipelineActivityLog.job_position.ilike(f"%{job_position}%"))

    total = db.execute(
        select(func.count()).select_from(PipelineActivityLog).where(*filters)
    ).scalar_one()
    items = db.execute(
        select(PipelineActivityLog)
        .where(*filters)
        .order_by(PipelineActivityLog.created_at.desc(), PipelineActivityLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return ActivityPage(items=items, page=page, limit=limit, total=total)
