import pytest

from services.candidate_service import insert_candidate
from services.errors import CandidateNotFoundError, ValidationError
from services.interview_service import (
    COMPLETED,
    IN_PROGRESS,
    DatabaseInterviewProvisioner,
    complete_interview,
    create_interview,
    get_interview_by_token,
    list_interviews,
    start_interview,
)


@pytest.fixture
def candidate(db):
    return insert_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com"})


def test_provisioner_creates_interview_with_unique_token(db, candidate, session_factory):
    provisioner = DatabaseInterviewProvisioner(session_factory)

    first = provisioner.provision(candidate.id)
    second = provisioner.provision(candidate.id)

    assert first != second
    assert {i.interview_token for i in list_interviews(db, candidate.id)} == {first, second}


def test_create_interview_for_unknown_candidate(db):
    with pytest.raises(CandidateNotFoundError):
        create_interview(db, "no-such-id")


def test_interview_lifecycle(db, candidate):
    token = create_interview(db, candidate.id, questions=[{"q": "Tell us about a model you shipped"}]).interview_token
    db.commit()

    started = start_interview(db, token)
    assert started.status == IN_PROGRESS
    assert started.started_at is not None

    done = complete_interview(db, token, answers=[{"a": "..."}], evaluation={"overall": "good"}, score=78.0)
    assert done.status == COMPLETED
    assert get_interview_by_token(db, token).score == 78.0


def test_interview_cannot_skip_or_repeat_steps(db, candidate):
    token = create_interview(db, candidate.id).interview_token
    db.commit()

    with pytest.raises(ValidationError):
        complete_interview(db, token)
    start_interview(db, token)
    with pytest.raises(ValidationError):
        start_interview(db, token)


def test_unknown_token(db):
    with pytest.raises(ValidationError):
        start_interview(db, "nope")
