import json
from types import SimpleNamespace

import pytest

from services.candidate_service import insert_candidate
from services.errors import ValidationError
from services.openai_service import OpenAIMatcher, extract_candidate_fields, sanitize_resume_text

RESUME = (
    "Asha Rao | asha@x.com | +91 98450 00000\n"
    "Data scientist, 5 years. Python, SQL, scikit-learn, Airflow.\n"
)


class FakeClient:
    def __init__(self, arguments=None, content=None):
        self.requests = []
        tool_calls = None
        if arguments is not None:
            tool_calls = [SimpleNamespace(function=SimpleNamespace(arguments=arguments))]
        message = SimpleNamespace(tool_calls=tool_calls, content=content)
        response = SimpleNamespace(choices=[SimpleNamespace(message=message)])
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create(response)))

    def _create(self, response):
        def create(**kwargs):
            self.requests.append(kwargs)
            return response
        return create


def test_extract_reads_the_tool_call():
    client = FakeClient(arguments=json.dumps({"full_name": "Asha Rao", "email": "asha@x.com", "experience_years": 5}))

    fields = extract_candidate_fields(RESUME, client=client)

    assert fields["email"] == "asha@x.com"
    assert client.requests[0]["tool_choice"]["function"]["name"] == "extract_candidate_info"


def test_extract_falls_back_to_message_content():
    client = FakeClient(content='Here you go: {"full_name": "Asha Rao", "email": "asha@x.com"} Thanks!')
    assert extract_candidate_fields(RESUME, client=client)["full_name"] == "Asha Rao"


def test_extract_requires_name_and_email():
    client = FakeClient(arguments=json.dumps({"full_name": "Asha Rao"}))
    with pytest.raises(ValidationError):
        extract_candidate_fields(RESUME, client=client)


@pytest.mark.parametrize("text", ["", "too short", "x" * 50001])
def test_extract_rejects_bad_length(text):
    with pytest.raises(ValidationError):
        extract_candidate_fields(text, client=FakeClient(arguments="{}"))


def test_sanitize_strips_control_characters():
    assert sanitize_resume_text("  Asha\x00 Rao\x07\n") == "Asha Rao"


def test_matcher_stores_report(db, job, session_factory):
    cand = insert_candidate(
        db, {"full_name": "Asha Rao", "email": "asha@x.com", "resume_text": RESUME, "job_id": job.id}
    )
    seen = []

    def report_fn(resume_text, job_text):
        seen.append(job_text)
        return {"score": 81, "summary": "Good fit", "strengths": ["Python"], "gaps": []}

    report = OpenAIMatcher(session_factory, report_fn=report_fn).match(cand.id)

    assert report["score"] == 81
    assert seen == ["Python, SQL, ML"]
    db.refresh(cand)
    assert cand.ai_match_score == 81


def test_matcher_skips_candidates_without_job(db, session_factory):
    cand = insert_candidate(db, {"full_name": "Asha Rao", "email": "asha@x.com", "resume_text": RESUME})

    def report_fn(resume_text, job_text):
        raise AssertionError("should not be called")

    assert OpenAIMatcher(session_factory, report_fn=report_fn).match(cand.id) is None


def test_match_report_fills_missing_keys(monkeypatch):
    import services.openai_service as openai_service

    posted = []

    class FakeResponse:
        def raise_for_status(self):
            pass

        def json(self):
            return {"choices": [{"message": {"content": '{"score": 64, "summary": "Partial fit"}'}}]}

    class FakeHttpClient:
        def __init__(self, timeout=None):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def post(self, url, headers=None, json=None):
            posted.append(json)
            return FakeResponse()

    monkeypatch.setattr(openai_service, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(openai_service.httpx, "Client", FakeHttpClient)

    report = openai_service.get_match_report(RESUME, "Senior data scientist")

    assert report == {"score": 64, "summary": "Partial fit", "strengths": [], "gaps": []}
    assert "Senior data scientist" in posted[0]["messages"][1]["content"]


def test_match_report_needs_api_key(monkeypatch):
    import services.openai_service as openai_service

    monkeypatch.setattr(openai_service, "OPENAI_API_KEY", None)
    with pytest.raises(RuntimeError):
        openai_service.get_match_report(RESUME, "anything")
