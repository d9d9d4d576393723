from typing import Optional
from sqlalchemy.orm import Session
from models.job import Job


def create_job(db: Session, position: str, department: Optional[str] = None, description: Optional[str] = None) -> Job:
    if not position or not position.strip():
        raise ValueError("Position is required to create a job.")

    # Check for duplicate open position in the same department
    existing = (
        db.query(Job)
        .filter(Job.position == position.strip())
        .filter(Job.department == department)
        .filter(Job.status == "open")
        .first()
    )
    if existing:
        raise ValueError(f"An open job '{position}' already exists in this department.")

    j = Job(position=position.strip(), department=department, description=description)
    db.add(j)
    db.commit()
    db.refresh(j)
    return j


def get_job(db: Session, job_id: Optional[str]) -> Optional[Job]:
    if not job_id:
        return None
    return db.query(Job).filter(Job.id == job_id).first()
