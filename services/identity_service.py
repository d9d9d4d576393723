"""
Identity resolution: is there already a live candidate for this email?

Matching is exact after normalization (trim + lower-case). Two resolvers
racing on the same brand-new email may both see NotFound; the unique index on
candidates.email settles that race at insert time.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.candidate import Candidate
from services.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class Found:
    candidate_id: str
    snapshot: Dict[str, Any]


@dataclass(frozen=True)
class NotFound:
    email: str


def normalize_email(email: Any) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required", field="email")
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValidationError(f"Invalid email format: {email}", field="email")
    return normalized


def resolve_identity(db: Session, email: str) -> Union[Found, NotFound]:
    # local import: candidate_service imports this module for normalize_email
    from services.candidate_service import candidate_snapshot

    normalized = normalize_email(email)
    stmt = (
        select(Candidate)
        .where(Candidate.email == normalized)
        .where(Candidate.archived_at.is_(None))
        .limit(1)
    )
    candidate = db.execute(stmt).scalars().first()
    if candidate is None:
        return NotFound(email=normalized)
    return Found(candidate_id=candidate.id, snapshot=candidate_snapshot(candidate))
