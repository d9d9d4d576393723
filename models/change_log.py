"""
CandidateChangeLog model: append-only record of every create/update applied
to a Candidate by ingestion. The candidate email is copied onto the entry so
the entry stays meaningful if the candidate is archived.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, event
from db.session import Base
from services.errors import ImmutableRecordError


class CandidateChangeLog(Base):
    __tablename__ = "candidate_change_logs"

    id = Column(Integer, primary_key=True, index=True)
    candidate_email = Column(String(255), nullable=False, index=True)
    action = Column(String(20), nullable=False)  # 'created' or 'updated'
    changed_fields = Column(JSON, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    source = Column(String(50), nullable=False, default="resume_upload")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    candidate_id = Column(
        String(36), ForeignKey("candidates.id"), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<CandidateChangeLog {self.id} {self.action} {self.candidate_email}>"


@event.listens_for(CandidateChangeLog, "before_update")
@event.listens_for(CandidateChangeLog, "before_delete")
def _reject_change_log_mutation(mapper, connection, target):
    raise ImmutableRecordError(f"Change log entry {target.id} is append-only")
