from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from contextlib import contextmanager
from typing import Generator, Iterator
import os
from dotenv import load_dotenv

load_dotenv()

# Local SQLite file unless DATABASE_URL points elsewhere (e.g. Postgres)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///db/pipeline.db")
DB_ECHO = (os.getenv("DB_ECHO") or "false").lower() == "true"

# Side effects touch the database from worker threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, echo=DB_ECHO, future=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

Base = declarative_base()


def get_db() -> Generator:
    """Yields a session for one unit of caller work and always closes it."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope(factory=None) -> Iterator:
    """
    Short-lived session for work that runs outside a request, e.g. side effects
    executed on the dispatcher's worker threads. Commits on success.
    """
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
