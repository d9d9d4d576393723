"""
OpenAI helper service.

- Resume field extraction (the "extractor" in front of ingestion): turns raw
  resume text into {full_name, email, phone, experience_years, skills, ...}
  using a function-calling chat completion.
- Resume vs. job match reports, stored on the candidate as a side effect.

Note: set OPENAI_API_KEY and OPENAI_MODEL in .env before use.
"""

import os
import re
import json
import logging
from typing import Dict, Any, Optional

import httpx
from dotenv import load_dotenv
from openai import OpenAI

from db.session import session_scope
from services.candidate_service import get_candidate, record_match_result
from services.errors import ValidationError

load_dotenv()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL") or "gpt-4o-mini"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

MIN_RESUME_CHARS = 50
MAX_RESUME_CHARS = 50000

logger = logging.getLogger(__name__)

if not OPENAI_API_KEY:
    logger.warning(
        "OPENAI_API_KEY is not set. Resume extraction and matching will fail until you provide an API key."
    )

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]")

EXTRACT_TOOL = {
    "type": "function",
    "function": {
        "name": "extract_candidate_info",
        "description": "Extract structured candidate information from resume text",
        "parameters": {
            "type": "object",
            "properties": {
                "full_name": {"type": "string", "description": "Full name of the candidate"},
                "email": {"type": "string", "description": "Email address"},
                "phone": {"type": "string", "description": "Phone number"},
                "experience_years": {"type": "number", "description": "Years of experience as a number"},
                "position": {"type": "string", "description": "Job position or title"},
                "skills": {"type": "string", "description": "Comma-separated list of skills"},
                "location": {"type": "string", "description": "Location (city, state, country)"},
                "education": {"type": "string", "description": "Educational qualifications"},
                "summary": {"type": "string", "description": "Brief professional summary"},
            },
            "required": ["full_name", "email"],
            "additionalProperties": False,
        },
    },
}


def sanitize_resume_text(text: str) -> str:
    """Strip NUL bytes and other control characters that databases reject."""
    return _CONTROL_CHARS.sub("", text.replace("\u0000", "")).strip()


def _safe_parse_json(text: str) -> Optional[Any]:
    """
    Try robust JSON extraction from model text. The model may wrap the object
    in extra prose, so fall back to the outermost {...} substring.
    """
    text = (text or "").strip()
    try:
        return json.loads(text)
    except ValueError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            return json.loads(text[start : end + 1])
        except ValueError:
            return None


def extract_candidate_fields(resume_text: str, client: Optional[OpenAI] = None) -> Dict[str, Any]:
    """
    Ask the model for the candidate's fields.

    Raises ValidationError for unusable input or output (too short/long text,
    no tool call, missing name/email) and RuntimeError if the key is missing.
    """
    if not isinstance(resume_text, str) or not resume_text.strip():
        raise ValidationError("Resume text is required", field="resume_text")
    if len(resume_text) > MAX_RESUME_CHARS:
        raise ValidationError(f"Resume text too long. Maximum {MAX_RESUME_CHARS:,} characters.", field="resume_text")
    if len(resume_text) < MIN_RESUME_CHARS:
        raise ValidationError(f"Resume text too short. Minimum {MIN_RESUME_CHARS} characters.", field="resume_text")

    if client is None:
        if not OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY not set. Populate .env with your key before parsing resumes.")
        client = OpenAI()

    response = client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=[
            {"role": "system", "content": "You are a resume parser. Extract candidate information accurately from resumes."},
            {"role": "user", "content": f"Parse this resume and extract the candidate information:\n\n{resume_text}"},
        ],
        tools=[EXTRACT_TOOL],
        tool_choice={"type": "function", "function": {"name": "extract_candidate_info"}},
        temperature=0.0,
    )

    if not response.choices:
        raise ValidationError("No candidate data extracted from resume")
    message = response.choices[0].message
    tool_calls = getattr(message, "tool_calls", None) or []
    if tool_calls:
        parsed = _safe_parse_json(tool_calls[0].function.arguments)
    else:
        # some models answer in plain content despite tool_choice
        parsed = _safe_parse_json(getattr(message, "content", "") or "")

    if not isinstance(parsed, dict):
        raise ValidationError("No candidate data extracted from resume")
    if not parsed.get("full_name") or not parsed.get("email"):
        raise ValidationError("Extracted data is missing full_name or email")
    logger.info("Extracted candidate fields for %s", parsed.get("email"))
    return parsed


MATCH_SYSTEM_PROMPT = (
    "You screen applicants for a recruitment team. Compare the resume with the job posting "
    "and answer with a single JSON object and nothing else. Keys: "
    "'score' (integer 0-100, how well the resume covers the posting), "
    "'summary' (two sentences on overall fit), "
    "'strengths' (3-5 short items the posting asks for and the resume shows), "
    "'gaps' (2-3 short items the posting asks for that the resume does not show)."
)

_MATCH_DEFAULTS = {"score": 0, "summary": "No summary provided.", "strengths": [], "gaps": []}


def get_match_report(resume_text: str, job_description: str) -> Optional[Dict[str, Any]]:
    """
    Score a resume against a job posting.
    Returns {'score', 'summary', 'strengths', 'gaps'} or None if the model's
    answer cannot be used.
    """
    if not OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY not set.")

    body = {
        "model": OPENAI_MODEL,
        "temperature": 0.1,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": MATCH_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"JOB POSTING:\n{job_description}\n\nRESUME:\n{resume_text}",
            },
        ],
    }

    with httpx.Client(timeout=90.0) as client:
        response = client.post(
            OPENAI_API_URL,
            headers={"Authorization": f"Bearer {OPENAI_API_KEY}"},
            json=body,
        )
        response.raise_for_status()
        choices = response.json().get("choices") or [{}]

    content = (choices[0].get("message") or {}).get("content")
    report = _safe_parse_json(content) if content else None
    if not isinstance(report, dict):
        logger.error("Match report response had no usable JSON content")
        return None
    return {**_MATCH_DEFAULTS, **report}


class OpenAIMatcher:
    """Matcher side effect: scores a candidate's resume against their job."""

    def __init__(self, session_factory, report_fn=get_match_report):
        self.session_factory = session_factory
        self.report_fn = report_fn

    def match(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        with session_scope(self.session_factory) as db:
            candidate = get_candidate(db, candidate_id)
            if candidate is None or not candidate.resume_text or candidate.job is None:
                logger.info("Skipping match for candidate %s: no resume or no job", candidate_id)
                return None
            job = candidate.job
            job_text = job.description or job.position
            resume_text = candidate.resume_text

        report = self.report_fn(resume_text, job_text)
        if report is None:
            return None
        with session_scope(self.session_factory) as db:
            record_match_result(db, candidate_id, report.get("score"), report)
        logger.info("Stored match score %s for candidate %s", report.get("score"), candidate_id)
        return report
