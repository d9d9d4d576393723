"""
Entry point for the candidate pipeline.

Wires the database and the side-effect collaborators together and exposes
the core operations on the command line:

    python app.py ingest --file candidates.json
    python app.py parse --file resume.txt [--job-id JOB]
    python app.py move --stage hr_screen --actor alice@corp.com ID [ID ...]
    python app.py activity [--email someone@x.com]

Results are printed as JSON.
"""

import argparse
import contextlib
import json
import logging
import os
import sys

import sqlalchemy
from dotenv import load_dotenv

from db.session import Base, SessionLocal, engine, get_db
from models.candidate import Candidate
from models.change_log import CandidateChangeLog
from models.interview import Interview
from models.job import Job
from models.pipeline_activity import PipelineActivityLog

load_dotenv()

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def init_db():
    """
    Ensure DB tables exist. Uses SQLAlchemy Base metadata to create tables if they don't exist.
    """
    try:
        Base.metadata.create_all(bind=engine)
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.error(f"Database error during initialization: {e}")
        raise


def build_dispatcher():
    """Dispatcher with the production collaborators configured from the environment."""
    from services.dispatcher import SideEffectDispatcher
    from services.email_service import EmailNotifier
    from services.interview_service import DatabaseInterviewProvisioner
    from services.openai_service import OPENAI_API_KEY, OpenAIMatcher

    matcher = OpenAIMatcher(SessionLocal) if OPENAI_API_KEY else None
    return SideEffectDispatcher(
        notifier=EmailNotifier(),
        provisioner=DatabaseInterviewProvisioner(SessionLocal),
        matcher=matcher,
    )


def _load_json(path: str):
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def _cmd_ingest(db, dispatcher, args):
    from services.ingestion_service import ingest_batch

    payload = _load_json(args.file)
    if isinstance(payload, dict):
        payload = payload.get("candidates")
    return ingest_batch(db, payload, provenance=args.provenance, dispatcher=dispatcher).to_dict()


def _cmd_parse(db, dispatcher, args):
    from services.ingestion_service import ingest_resume

    with open(args.file, "r", encoding="utf-8", errors="ignore") as fh:
        text = fh.read()
    result = ingest_resume(
        db, text, job_id=args.job_id, resume_url=args.resume_url, dispatcher=dispatcher
    )
    return {"success": result.succeeded, "candidate": result.to_dict()}


def _cmd_move(db, dispatcher, args):
    from services.stage_service import transition_candidates

    results = transition_candidates(db, args.ids, args.stage, args.actor, dispatcher=dispatcher)
    return {"success": True, "results": [r.to_dict() for r in results]}


def _cmd_activity(db, dispatcher, args):
    from services.audit_service import list_activity

    page = list_activity(
        db, candidate_email=args.email, job_position=args.position, page=args.page, limit=args.limit
    )
    return {
        "success": True,
        "data": [
            {
                "candidate_id": e.candidate_id,
                "candidate_name": e.candidate_name,
                "candidate_email": e.candidate_email,
                "job_position": e.job_position,
                "old_stage": e.old_stage,
                "old_stage_label": e.old_stage_label,
                "new_stage": e.new_stage,
                "new_stage_label": e.new_stage_label,
                "changed_by": e.changed_by,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in page.items
        ],
        "pagination": {"page": page.page, "limit": page.limit, "total": page.total, "pages": page.pages},
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Candidate pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest_parser = subparsers.add_parser("ingest", help="Ingest a JSON array of candidates")
    ingest_parser.add_argument("--file", required=True, help="JSON file: [..] or {\"candidates\": [..]}")
    ingest_parser.add_argument("--provenance", default="batch_upload")
    ingest_parser.set_defaults(handler=_cmd_ingest)

    parse_parser = subparsers.add_parser("parse", help="Extract and ingest a plain-text resume")
    parse_parser.add_argument("--file", required=True)
    parse_parser.add_argument("--job-id")
    parse_parser.add_argument("--resume-url")
    parse_parser.set_defaults(handler=_cmd_parse)

    move_parser = subparsers.add_parser("move", help="Move candidates to a pipeline stage")
    move_parser.add_argument("--stage", required=True)
    move_parser.add_argument("--actor", required=True)
    move_parser.add_argument("ids", nargs="+")
    move_parser.set_defaults(handler=_cmd_move)

    activity_parser = subparsers.add_parser("activity", help="Show stage transition history")
    activity_parser.add_argument("--email")
    activity_parser.add_argument("--position")
    activity_parser.add_argument("--page", type=int, default=1)
    activity_parser.add_argument("--limit", type=int, default=50)
    activity_parser.set_defaults(handler=_cmd_activity)

    return parser


def main(argv=None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    init_db()

    dispatcher = build_dispatcher()
    try:
        with contextlib.closing(next(get_db())) as db:
            output = args.handler(db, dispatcher, args)
    finally:
        # let emails and provisioning finish before the process exits
        dispatcher.shutdown(wait=True)

    json.dump(output, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
