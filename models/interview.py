"""
Interview model: an AI interview provisioned when a candidate reaches the
confirmation stage. The candidate opens it through its unique access token.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Float, Boolean, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from db.session import Base


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    interview_token = Column(String(64), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    questions = Column(JSON, nullable=True)
    answers = Column(JSON, nullable=True)
    evaluation = Column(JSON, nullable=True)
    score = Column(Float, nullable=True)
    video_url = Column(String(1024), nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Database-level Links

    # Link to the Candidate. Candidates are only ever archived, never deleted.
    candidate_id = Column(
        String(36), ForeignKey("candidates.id"), nullable=False, index=True
    )

    # ORM Relationships
    candidate = relationship("Candidate", back_populates="interviews")

    def __repr__(self) -> str:
        return f"<Interview {self.id} - CandID {self.candidate_id} [{self.status}]>"
