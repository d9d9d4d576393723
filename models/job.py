"""
Job model: Stores job postings.
Candidates reference a job; its position is copied onto activity log entries.
"""
import uuid

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db.session import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    position = Column(String(255), nullable=False)
    department = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(50), default="open", index=True)
    created_at = Column(DateTime, server_default=func.now())

    # ORM Relationships:
    # Deleting a Job leaves its candidates in place (job_id is set to NULL).
    candidates = relationship("Candidate", back_populates="job")

    def __repr__(self) -> str:
        return f"<Job {self.id} - {self.position}>"
