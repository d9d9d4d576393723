"""
Interview provisioning for candidates entering the confirmation stage.

Only creation belongs to the pipeline; the interview's own lifecycle
(questions, answers, evaluation, video) is driven by the interview app. The
start/complete helpers below just guard its status progression.
"""
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from db.session import session_scope
from models.interview import Interview
from services.errors import CandidateNotFoundError, ValidationError
from services.candidate_service import get_candidate

logger = logging.getLogger(__name__)

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


def _new_token() -> str:
    return secrets.token_urlsafe(24)


def create_interview(db: Session, candidate_id: str, questions: Optional[List[Dict[str, Any]]] = None) -> Interview:
    if get_candidate(db, candidate_id) is None:
        raise CandidateNotFoundError(candidate_id)
    interview = Interview(
        candidate_id=candidate_id,
        interview_token=_new_token(),
        status=PENDING,
        questions=questions,
    )
    db.add(interview)
    db.flush()
    return interview


class DatabaseInterviewProvisioner:
    """Provisions interviews in a session of its own, off the caller's unit of work."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def provision(self, candidate_id: str) -> str:
        with session_scope(self.session_factory) as db:
            interview = create_interview(db, candidate_id)
            token = interview.interview_token
        logger.info("Created interview for candidate %s", candidate_id)
        return token


def list_interviews(db: Session, candidate_id: str) -> List[Interview]:
    return (
        db.query(Interview)
        .filter(Interview.candidate_id == candidate_id)
        .order_by(Interview.created_at.asc())
        .all()
    )


def get_interview_by_token(db: Session, token: str) -> Optional[Interview]:
    return db.query(Interview).filter(Interview.interview_token == token).first()


def start_interview(db: Session, token: str) -> Interview:
    interview = get_interview_by_token(db, token)
    if interview is None:
        raise ValidationError("Interview not found", field="interview_token")
    if interview.status != PENDING:
        raise ValidationError(f"Interview cannot be started from status '{interview.status}'")
    interview.status = IN_PROGRESS
    interview.started_at = datetime.utcnow()
    db.commit()
    db.refresh(interview)
    return interview


def complete_interview(
    db: Session,
    token: str,
    answers: Any = None,
    evaluation: Any = None,
    score: Optional[float] = None,
    video_url: Optional[str] = None,
) -> Interview:
    interview = get_interview_by_token(db, token)
    if interview is None:
        raise ValidationError("Interview not found", field="interview_token")
    if interview.status != IN_PROGRESS:
        raise ValidationError(f"Interview cannot be completed from status '{interview.status}'")
    interview.status = COMPLETED
    interview.answers = answers
    interview.evaluation = evaluation
    interview.score = score
    interview.video_url = video_url
    interview.completed_at = datetime.utcnow()
    db.commit()
    db.refresh(interview)
    return interview
