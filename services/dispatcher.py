"""
Side-effect dispatcher.

Side effects (emails, interview provisioning, AI matching) run after the
primary write has committed, on a worker pool, each behind its own error
boundary. A failing side effect is logged and recorded in `failures`; it never
reaches the caller of the ingestion or transition that triggered it, and is
never retried here.
"""
import logging
import os
import threading
from collections import deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait as wait_futures
from typing import Any, Dict, Optional, Protocol

from dotenv import load_dotenv

from services.errors import SideEffectError

load_dotenv()

DISPATCH_MAX_WORKERS = int(os.getenv("DISPATCH_MAX_WORKERS", "4") or 4)

logger = logging.getLogger(__name__)


class EventKind:
    NOTIFY_INGESTED = "notify_ingested"
    NOTIFY_UPDATED = "notify_updated"
    NOTIFY_STAGE_CHANGE = "notify_stage_change"
    PROVISION_INTERVIEW = "provision_interview"
    MATCH_CANDIDATE = "match_candidate"

    ALL = (NOTIFY_INGESTED, NOTIFY_UPDATED, NOTIFY_STAGE_CHANGE, PROVISION_INTERVIEW, MATCH_CANDIDATE)


# Notification type sent to the notifier for the interview invitation.
AI_INTERVIEW_INVITE = "ai_interview"


class Notifier(Protocol):
    def notify(self, candidate_id: str, event_kind: str, context: Dict[str, Any]) -> Any: ...


class InterviewProvisioner(Protocol):
    def provision(self, candidate_id: str) -> str: ...


class Matcher(Protocol):
    def match(self, candidate_id: str) -> Any: ...


class SideEffectDispatcher:
    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        provisioner: Optional[InterviewProvisioner] = None,
        matcher: Optional[Matcher] = None,
        executor: Optional[Executor] = None,
        max_workers: int = DISPATCH_MAX_WORKERS,
        failure_history: int = 100,
    ):
        self.notifier = notifier
        self.provisioner = provisioner
        self.matcher = matcher
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="side-effect"
        )
        self._pending = set()
        self._lock = threading.Lock()
        self.failures = deque(maxlen=failure_history)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)

    def dispatch(self, candidate_id: str, event_kind: str, context: Optional[Dict[str, Any]] = None) -> Optional[Future]:
        """Fire and forget. Returns the future for callers that want to wait (tests, CLI)."""
        context = dict(context or {})
        try:
            future = self._executor.submit(self._run_guarded, candidate_id, event_kind, context)
        except RuntimeError as exc:
            # executor already shut down
            self._record(SideEffectError(event_kind, candidate_id, exc))
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for all outstanding side effects. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        elif wait:
            self.drain()

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _record(self, error: SideEffectError) -> None:
        self.failures.append(error)
        logger.error("Side effect failed: %s", error, exc_info=error.cause)

    def _run_guarded(self, candidate_id: str, event_kind: str, context: Dict[str, Any]) -> None:
        try:
            self._run(candidate_id, event_kind, context)
        except Exception as exc:
            self._record(SideEffectError(event_kind, candidate_id, exc))

    def _run(self, candidate_id: str, event_kind: str, context: Dict[str, Any]) -> None:
        if event_kind in (EventKind.NOTIFY_INGESTED, EventKind.NOTIFY_UPDATED, EventKind.NOTIFY_STAGE_CHANGE):
            if self.notifier is None:
                logger.debug("No notifier configured; skipping %s for %s", event_kind, candidate_id)
                return
            self.notifier.notify(candidate_id, event_kind, context)
            logger.info("Sent %s notification for candidate %s", event_kind, candidate_id)
        elif event_kind == EventKind.PROVISION_INTERVIEW:
            self._provision_interview(candidate_id, context)
        elif event_kind == EventKind.MATCH_CANDIDATE:
            if self.matcher is None:
                logger.debug("No matcher configured; skipping match for %s", candidate_id)
                return
            self.matcher.match(candidate_id)
        else:
            logger.warning("Ignoring unknown side effect %r for candidate %s", event_kind, candidate_id)

    def _provision_interview(self, candidate_id: str, context: Dict[str, Any]) -> None:
        if self.provisioner is None:
            logger.warning("No interview provisioner configured; candidate %s gets no interview", candidate_id)
            return
        token = self.provisioner.provision(candidate_id)
        logger.info("Provisioned AI interview for candidate %s", candidate_id)
        if self.notifier is None:
            return
        # The interview exists now; a failed invitation must not hide that.
        try:
            self.notifier.notify(candidate_id, AI_INTERVIEW_INVITE, dict(context, interview_token=token))
        except Exception as exc:
            self._record(SideEffectError(AI_INTERVIEW_INVITE, candidate_id, exc))
