import contextlib
import json
import logging
import sys

from dotenv import load_dotenv

from app import build_dispatcher, init_db
from db.session import get_db
from services.ingestion_service import BATCH_UPLOAD, ingest_batch

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def upload_file(path: str) -> dict:
    """
    Ingest every candidate in a JSON file (a list, or {"candidates": [...]})
    with provenance 'batch_upload'. Returns the aggregate batch response.
    """
    load_dotenv()

    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if isinstance(payload, dict):
        payload = payload.get("candidates")

    init_db()
    dispatcher = build_dispatcher()
    try:
        with contextlib.closing(next(get_db())) as db:
            batch = ingest_batch(db, payload, provenance=BATCH_UPLOAD, dispatcher=dispatcher)
    finally:
        dispatcher.shutdown(wait=True)

    logger.info(
        "Batch upload of %s complete: %d succeeded, %d failed",
        path, len(batch.succeeded), len(batch.failed),
    )
    return batch.to_dict()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python batch_upload.py <candidates.json>", file=sys.stderr)
        sys.exit(2)
    print(json.dumps(upload_file(sys.argv[1]), indent=2, default=str))
