"""
Stage transitions.

A transition writes the candidate's new stage and its pipeline activity entry
in one commit, then hands notifications (and, for the confirmation stage,
interview provisioning) to the dispatcher. Any stage may move to any other,
backwards included. Moving a candidate to the stage it is already in is still
recorded, since the operator asked for it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.audit_service import log_stage_change
from services.candidate_service import get_candidate, set_candidate_stage
from services.dispatcher import EventKind
from services.errors import CandidateNotFoundError, PipelineError, StoreError
from services.stages import INTERVIEW_STAGE, normalize_stage

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    id: str
    success: bool
    old_stage: Optional[str] = None
    new_stage: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "success": self.success}
        if self.success:
            data["old_stage"] = self.old_stage
            data["new_stage"] = self.new_stage
        else:
            data["error"] = self.error
        return data


def _apply_transition(
    db: Session,
    candidate_id: str,
    new_stage: str,
    actor: Optional[str],
    interview_score: Optional[float],
    interview_details: Optional[Dict[str, Any]],
):
    try:
        candidate = get_candidate(db, candidate_id)
        if candidate is None:
            raise CandidateNotFoundError(candidate_id)

        old_stage = candidate.status
        # read everything the side effects need before committing
        context = {
            "candidate_name": candidate.full_name,
            "candidate_email": candidate.email,
            "job_position": candidate.job.position if candidate.job is not None else None,
            "old_stage": old_stage,
            "new_stage": new_stage,
            "actor": actor,
        }
        set_candidate_stage(db, candidate, new_stage)
        log_stage_change(
            db,
            candidate,
            old_stage,
            new_stage,
            actor,
            interview_score=interview_score,
            interview_details=interview_details,
            commit=False,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError(f"Failed to move candidate {candidate_id}: {exc}") from exc

    return old_stage, context


def _dispatch_transition_effects(dispatcher, candidate_id: str, new_stage: str, context: Dict[str, Any]) -> None:
    if dispatcher is None:
        return
    dispatcher.dispatch(candidate_id, EventKind.NOTIFY_STAGE_CHANGE, context)
    if new_stage == INTERVIEW_STAGE:
        dispatcher.dispatch(candidate_id, EventKind.PROVISION_INTERVIEW, context)


def transition_candidate(
    db: Session,
    candidate_id: str,
    new_stage: str,
    actor: Optional[str],
    dispatcher=None,
    interview_score: Optional[float] = None,
    interview_details: Optional[Dict[str, Any]] = None,
) -> TransitionResult:
    """
    Move one candidate. Never raises for per-candidate problems: unknown
    stage, unknown candidate or a failed write come back as success=False.
    """
    try:
        stage = normalize_stage(new_stage)
        old_stage, context = _apply_transition(
            db, candidate_id, stage, actor, interview_score, interview_details
        )
    except PipelineError as exc:
        logger.warning("Stage move of candidate %s to %s failed: %s", candidate_id, new_stage, exc)
        return TransitionResult(id=candidate_id, success=False, error=str(exc))

    logger.info("Candidate %s moved %s -> %s by %s", candidate_id, old_stage, stage, actor)
    _dispatch_transition_effects(dispatcher, candidate_id, stage, context)
    return TransitionResult(id=candidate_id, success=True, old_stage=old_stage, new_stage=stage)


def transition_candidates(
    db: Session,
    candidate_ids: Iterable[str],
    new_stage: str,
    actor: Optional[str],
    dispatcher=None,
) -> List[TransitionResult]:
    """
    Bulk move. Each candidate is handled on its own, in input order; one
    failure does not stop the rest. Repeated ids are moved once.
    """
    results = []
    seen = set()
    for candidate_id in candidate_ids:
        if candidate_id in seen:
            continue
        seen.add(candidate_id)
        try:
            result = transition_candidate(db, candidate_id, new_stage, actor, dispatcher=dispatcher)
        except Exception as exc:
            # keep the batch going; this item is reported as failed
            logger.exception("Unexpected error moving candidate %s", candidate_id)
            db.rollback()
            result = TransitionResult(id=candidate_id, success=False, error=str(exc))
        results.append(result)

    ok = sum(1 for r in results if r.success)
    logger.info("Bulk move to %s: %d succeeded, %d failed", new_stage, ok, len(results) - ok)
    return results
