import pytest

import services.ingestion_service as ingestion
from models.candidate import Candidate
from models.change_log import CandidateChangeLog
from services.errors import ValidationError
from services.identity_service import NotFound
from services.ingestion_service import (
    CREATED,
    REJECTED,
    UPDATED,
    ingest_batch,
    ingest_candidate,
    ingest_resume,
)


def _logs(db, action=None):
    query = db.query(CandidateChangeLog)
    if action:
        query = query.filter(CandidateChangeLog.action == action)
    return query.all()


def test_new_candidate_is_created_and_logged(db, dispatcher, notifier, matcher):
    result = ingest_candidate(
        db, {"full_name": "Asha Rao", "email": "Asha@X.com", "phone": "111"}, dispatcher=dispatcher
    )

    assert result.outcome == CREATED
    assert result.email == "asha@x.com"
    assert result.to_dict() == {"id": result.id, "email": "asha@x.com", "full_name": "Asha Rao"}
    assert db.get(Candidate, result.id).status == "intake"
    [entry] = _logs(db)
    assert entry.action == "created"
    assert entry.source == "resume_upload"
    assert notifier.kinds() == ["notify_ingested"]
    assert matcher.calls == [result.id]


def test_reingest_updates_only_changed_fields(db, dispatcher, notifier):
    first = ingest_candidate(db, {"full_name": "Asha Rao", "email": "Asha@X.com", "phone": "111", "experience_years": 5})

    second = ingest_candidate(
        db,
        {"full_name": "Asha Rao", "email": "asha@x.com", "phone": "222", "experience_years": 5.0},
        dispatcher=dispatcher,
    )

    assert second.outcome == UPDATED
    assert second.id == first.id
    assert second.changed_fields == ["phone"]
    assert second.to_dict()["updated"] is True
    [entry] = _logs(db, "updated")
    assert entry.changed_fields == ["phone"]
    assert entry.old_values == {"phone": "111"}
    assert entry.new_values == {"phone": "222"}
    assert notifier.kinds() == ["notify_updated"]
    assert db.query(Candidate).count() == 1


def test_identical_reingest_writes_no_update_entry(db):
    data = {"full_name": "Asha Rao", "email": "asha@x.com", "phone": "111", "skills": "python, sql"}
    ingest_candidate(db, data)
    again = ingest_candidate(db, dict(data))

    assert again.outcome == UPDATED
    assert again.changed_fields == []
    assert len(_logs(db, "created")) == 1
    assert _logs(db, "updated") == []


def test_missing_fields_never_erase_existing_values(db):
    ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "phone": "111", "skills": "python"})
    result = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "phone": None, "skills": "  "})

    cand = db.get(Candidate, result.id)
    assert result.changed_fields == []
    assert cand.phone == "111"
    assert cand.skills == "python"


def test_lost_insert_race_becomes_an_update(db, monkeypatch):
    winner = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "phone": "111"})

    real_resolve = ingestion.resolve_identity
    calls = []

    def stale_resolve(session, email):
        # first lookup happens "before" the winner committed
        calls.append(email)
        if len(calls) == 1:
            return NotFound(email=email)
        return real_resolve(session, email)

    monkeypatch.setattr(ingestion, "resolve_identity", stale_resolve)
    loser = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "phone": "222"})

    assert len(calls) == 2
    assert loser.outcome == UPDATED
    assert loser.id == winner.id
    assert loser.changed_fields == ["phone"]
    assert db.query(Candidate).count() == 1
    assert len(_logs(db, "created")) == 1


def test_persistent_conflict_is_reported_as_duplicate(db, monkeypatch):
    ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com"})
    monkeypatch.setattr(ingestion, "resolve_identity", lambda session, email: NotFound(email=email))

    result = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com"})

    assert result.outcome == REJECTED
    assert result.to_dict()["isDuplicate"] is True


@pytest.mark.parametrize(
    "record, message",
    [
        ({"email": "a@x.com"}, "Missing required fields"),
        ({"full_name": "A"}, "Missing required fields"),
        ({"full_name": "A", "email": "not-an-email"}, "Invalid email"),
        ({"full_name": "A", "email": "a@x.com", "experience_years": -1}, "negative"),
        ({"full_name": "A", "email": "a@x.com", "experience_years": "lots"}, "number"),
        ({"full_name": "A", "email": "a@x.com", "status": "hired"}, "Unknown pipeline stage"),
    ],
)
def test_invalid_records_are_rejected_without_writes(db, record, message):
    result = ingest_candidate(db, record)
    assert result.outcome == REJECTED
    assert message in result.error
    assert db.query(Candidate).count() == 0


def test_unknown_job_is_dropped(db):
    result = ingest_candidate(db, {"full_name": "A", "email": "a@x.com", "job_id": "no-such-job"})
    assert result.outcome == CREATED
    assert db.get(Candidate, result.id).job_id is None


def test_known_job_and_skill_list(db, job):
    result = ingest_candidate(
        db, {"full_name": "A", "email": "a@x.com", "job_id": job.id, "skills": ["python", " sql "]}
    )
    cand = db.get(Candidate, result.id)
    assert cand.job_id == job.id
    assert cand.skills == "python, sql"


def test_batch_keeps_going_past_bad_records(db, dispatcher):
    records = [
        {"full_name": "Asha Rao", "email": "asha@x.com"},
        {"email": "broken@x.com"},
        "not a record",
        {"full_name": "Ben Ode", "email": "ben@y.org"},
        {"full_name": "Asha Rao", "email": "ASHA@x.com", "phone": "111"},
    ]

    batch = ingest_batch(db, records, dispatcher=dispatcher)
    body = batch.to_dict()["results"]

    assert body["successCount"] == 3
    assert body["failedCount"] == 2
    assert body["failedCandidates"][0]["email"] == "broken@x.com"
    assert body["failedCandidates"][1]["email"] == "unknown"
    assert body["successfulCandidates"][2]["changed_fields"] == ["phone"]
    assert {e.source for e in _logs(db)} == {"batch_upload"}
    assert db.query(Candidate).count() == 2


def test_batch_requires_a_list(db):
    with pytest.raises(ValidationError):
        ingest_batch(db, {"full_name": "A", "email": "a@x.com"})
    with pytest.raises(ValidationError):
        ingest_batch(db, None)


def test_ingest_resume_uses_extractor(db, job):
    resume = "Asha Rao\nasha@x.com\nData scientist with 5 years of Python and SQL.\x00"

    def extractor(text):
        assert text == resume
        return {"full_name": "Asha Rao", "email": "asha@x.com", "experience_years": 5, "skills": "python, sql"}

    result = ingest_resume(db, resume, extractor=extractor, job_id=job.id, resume_url="s3://cv/asha.pdf")

    cand = db.get(Candidate, result.id)
    assert result.outcome == CREATED
    assert cand.experience_years == 5
    assert cand.resume_url == "s3://cv/asha.pdf"
    assert "\x00" not in cand.resume_text


def test_ingest_resume_reports_extractor_failures(db):
    def extractor(text):
        raise ValidationError("Resume text too short. Minimum 50 characters.")

    result = ingest_resume(db, "short", extractor=extractor)
    assert result.outcome == REJECTED
    assert "too short" in result.error


def test_side_effect_failure_does_not_affect_ingestion(db, notifier, dispatcher):
    notifier.fail_on.add("notify_ingested")

    result = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com"}, dispatcher=dispatcher)

    assert result.outcome == CREATED
    assert db.get(Candidate, result.id) is not None
    [failure] = list(dispatcher.failures)
    assert failure.event_kind == "notify_ingested"
    assert failure.candidate_id == result.id


def test_status_seeds_new_candidates_only(db, dispatcher, notifier):
    from models.pipeline_activity import PipelineActivityLog
    from services.stage_service import transition_candidate

    created = ingest_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "status": "hr"})
    assert db.get(Candidate, created.id).status == "hr_screen"

    transition_candidate(db, created.id, "offer_letter", "ops")
    again = ingest_candidate(
        db, {"full_name": "Asha Rao", "email": "asha@x.com", "status": "intake", "phone": "222"}, dispatcher=dispatcher
    )

    assert again.changed_fields == ["phone"]
    assert db.get(Candidate, created.id).status == "offer_letter"
    assert db.query(PipelineActivityLog).count() == 1
    [entry] = _logs(db, "updated")
    assert "status" not in entry.new_values
    assert "notify_stage_change" not in notifier.kinds()
