import threading
from concurrent.futures import Executor, Future

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db.session import Base
from models.candidate import Candidate  # noqa: F401
from models.change_log import CandidateChangeLog  # noqa: F401
from models.interview import Interview  # noqa: F401
from models.job import Job  # noqa: F401
from models.pipeline_activity import PipelineActivityLog  # noqa: F401
from services.dispatcher import SideEffectDispatcher
from services.job_service import create_job


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            result = fn(*args, **kwargs)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future


class RecordingNotifier:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.sent = []
        self._lock = threading.Lock()

    def notify(self, candidate_id, event_kind, context):
        if event_kind in self.fail_on:
            raise RuntimeError(f"smtp down ({event_kind})")
        with self._lock:
            self.sent.append((candidate_id, event_kind, dict(context)))

    def kinds(self):
        return [kind for _, kind, _ in self.sent]


class RecordingProvisioner:
    def __init__(self):
        self.calls = []

    def provision(self, candidate_id):
        self.calls.append(candidate_id)
        return f"token-{len(self.calls)}"


class RecordingMatcher:
    def __init__(self):
        self.calls = []

    def match(self, candidate_id):
        self.calls.append(candidate_id)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pipeline.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def provisioner():
    return RecordingProvisioner()


@pytest.fixture
def matcher():
    return RecordingMatcher()


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def dispatcher(notifier, provisioner, matcher, inline_executor):
    return SideEffectDispatcher(
        notifier=notifier, provisioner=provisioner, matcher=matcher, executor=inline_executor
    )


@pytest.fixture
def job(db):
    return create_job(db, "Data Scientist", department="Analytics", description="Python, SQL, ML")
