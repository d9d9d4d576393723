"""
Candidate model: one applicant moving through the recruitment pipeline.
This is the "parent" record for change logs, pipeline activity and interviews.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import relationship
from db.session import Base
import models.job  # noqa: F401  relationship targets must be mapped
import models.interview  # noqa: F401


def _new_id() -> str:
    return str(uuid.uuid4())


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String(36), primary_key=True, default=_new_id)
    full_name = Column(String(255), nullable=False)
    # Stored normalized (trimmed, lower-cased); see services.identity_service
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(64), nullable=True)
    experience_years = Column(Float, nullable=True)
    resume_text = Column(Text, nullable=True)
    resume_url = Column(String(1024), nullable=True)
    skills = Column(Text, nullable=True)  # comma-delimited
    status = Column(String(64), nullable=False, default="intake", index=True)
    ai_match_score = Column(Float, nullable=True)
    ai_match_analysis = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    archived_at = Column(DateTime, nullable=True)

    # Database-level Links

    # Link to the Job. If the Job is deleted, the candidate stays unassigned.
    job_id = Column(
        String(36), ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # ORM Relationships
    job = relationship("Job", back_populates="candidates")
    interviews = relationship("Interview", back_populates="candidate")

    __table_args__ = (
        # At most one live record per email; archived rows do not count.
        Index(
            "uq_candidates_active_email",
            "email",
            unique=True,
            sqlite_where=text("archived_at IS NULL"),
            postgresql_where=text("archived_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Candidate {self.id} - {self.email} [{self.status}]>"
