"""
PipelineActivityLog model: one row per stage transition.
Name, email and job details are denormalized onto the row.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, JSON, event
from db.session import Base
from services.errors import ImmutableRecordError


class PipelineActivityLog(Base):
    __tablename__ = "pipeline_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    candidate_name = Column(String(255), nullable=False)
    candidate_email = Column(String(255), nullable=True, index=True)
    job_id = Column(String(36), nullable=True)
    job_position = Column(String(255), nullable=True)
    old_stage = Column(String(64), nullable=True)
    old_stage_label = Column(String(255), nullable=True)
    new_stage = Column(String(64), nullable=False)
    new_stage_label = Column(String(255), nullable=True)
    changed_by = Column(String(255), nullable=True)
    interview_score = Column(Float, nullable=True)
    interview_details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    candidate_id = Column(
        String(36), ForeignKey("candidates.id"), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<PipelineActivityLog {self.id} {self.candidate_email}: "
            f"{self.old_stage} -> {self.new_stage}>"
        )


@event.listens_for(PipelineActivityLog, "before_update")
@event.listens_for(PipelineActivityLog, "before_delete")
def _reject_activity_mutation(mapper, connection, target):
    raise ImmutableRecordError(f"Pipeline activity entry {target.id} is append-only")
