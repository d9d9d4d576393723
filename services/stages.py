"""
The fixed recruitment pipeline.

Stages are ordered for display and reporting only: any stage may move to any
other stage, including backwards, so operators can correct mistakes.
"""
from typing import Optional

from services.errors import ValidationError

INTAKE = "intake"
CONFIRMATION = "confirmation"
PLACED = "placed"
REJECTED = "rejected"

PIPELINE_STAGES = [
    (INTAKE, "Application Review"),
    ("hr_screen", "HR Screening"),
    ("written_test", "Written Test"),
    ("demo_slot", "Demo Slot Selection"),
    ("demo_schedule", "Demo Scheduled"),
    ("feedback", "Feedback & Results"),
    ("interaction", "Final Interaction"),
    ("background_verification", "Background Verification"),
    (CONFIRMATION, "Confirmation"),
    ("document_upload", "Document Upload"),
    ("verify", "Verification"),
    ("approval", "Approval"),
    ("offer_letter", "Offer Letter"),
    ("onboarding", "Onboarding"),
    (PLACED, "Placed"),
    (REJECTED, "Rejected"),
]

STAGE_LABELS = dict(PIPELINE_STAGES)
STAGE_ORDER = {value: idx for idx, (value, _) in enumerate(PIPELINE_STAGES)}

ABSORBING_STAGES = frozenset({PLACED, REJECTED})

# Entering this stage provisions an AI interview for the candidate.
INTERVIEW_STAGE = CONFIRMATION

# Stage names used by older clients of the pipeline.
LEGACY_ALIASES = {
    "pending": INTAKE,
    "hr": "hr_screen",
    "bgv": "background_verification",
    "upload_documents": "document_upload",
    "feedback_result": "feedback",
}


def normalize_stage(value: Optional[str]) -> str:
    """Return the canonical stage value or raise ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Stage is required", field="status")
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    key = LEGACY_ALIASES.get(key, key)
    if key not in STAGE_LABELS:
        raise ValidationError(f"Unknown pipeline stage '{value}'", field="status")
    return key


def stage_label(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return STAGE_LABELS.get(value, value)


def stage_index(value: str) -> int:
    return STAGE_ORDER[normalize_stage(value)]


def is_absorbing(value: str) -> bool:
    return value in ABSORBING_STAGES
