"""Session controller for solo practice, matches and contest problems.

This module is the only surface the UI layer talks to. It owns one Session
per open (problemId, mode) and wires the collaborators together:

- CodeStore: in-memory buffer + debounced durable copy of the code
- DeadlineTimer: solo countdown that auto-submits once on expiry
- SubmissionRouter: mode-aware judge calls + ResultNormalizer
- NotificationBridge: opponent-submitted signal for matches

Submission state machine (per session):
- Idle -> Running -> Idle          (run path)
- Idle -> Submitting -> Completed  (submit path)
Only one judge call is ever in flight per session. The phase is checked
and set before the first await, so two submits racing at the deadline
produce exactly one judge call.

Error surface:
- Every public operation returns an OperationResult; nothing raises past
  this module except asyncio cancellation.
- InvalidState is decided synchronously, before any I/O.
- BackendUnavailable always leaves the phase non-blocking (Idle after a
  run, Completed with a synthetic Unknown outcome after a submit).
- Each failure is reported to the user exactly once through `notify`.
- A judge call that lands after close() is returned to its caller but never
  applied: no state change, notification, announce or redirect.

Resources:
- Per session, the timer, pending debounce write, redirect/auto-submit
  tasks and channel subscription are registered on one AsyncExitStack;
  close() releases all of them on every exit path.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Coroutine, Dict, Mapping, Tuple

from .code_store import CodeStore, KeyValueStore
from .notifications import NotificationBridge, NotificationChannel, Subscription
from .results import OutcomeStatus, TestOutcome, failure_outcome
from .router import JudgeService, Match, Mode, ModeKind, Solo, SubmissionRouter, SubmitReceipt
from .session import OutcomeSource, Session, SubmissionPhase, SubmitTrigger
from .timer import DeadlineTimer
from .types import CodeKey, SubmissionEvent
from .validation import InputSanitizer, ProblemData, SessionSettings

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]  # (level, message)
Navigator = Callable[[str], None]


class ErrorKind(str, Enum):
    BACKEND_UNAVAILABLE = "BackendUnavailable"
    MALFORMED_RESPONSE = "MalformedResponse"
    INVALID_STATE = "InvalidState"
    MISSING_PROBLEM_DATA = "MissingProblemData"


@dataclass
class OperationResult:
    """Tagged result of a controller operation."""

    ok: bool
    value: Any = None
    kind: ErrorKind | None = None
    message: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "OperationResult":
        return cls(ok=False, kind=kind, message=message)

    def as_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "value": self.value}
        return {"ok": False, "kind": self.kind.value if self.kind else None, "message": self.message}


@dataclass(eq=False)
class _SessionResources:
    session: Session
    stack: AsyncExitStack = field(default_factory=AsyncExitStack)
    timer: DeadlineTimer | None = None
    subscription: Subscription | None = None
    tasks: set = field(default_factory=set)
    idle: asyncio.Event = field(default_factory=asyncio.Event)


class SessionController:
    def __init__(
        self,
        judge: JudgeService,
        storage: KeyValueStore,
        channel: NotificationChannel | None = None,
        *,
        settings: SessionSettings | None = None,
        notify: Notifier | None = None,
        navigate: Navigator | None = None,
    ) -> None:
        self.settings = settings or SessionSettings()
        self._judge = judge
        self._router = SubmissionRouter(
            judge,
            probe_case_index=self.settings.probe_case_index,
            contest_redirect_seconds=self.settings.contest_redirect_seconds,
            match_redirect_seconds=self.settings.match_redirect_seconds,
        )
        self.code_store = CodeStore(
            storage, self.settings.debounce_seconds, on_error=self._on_storage_error
        )
        self._bridge = (
            NotificationBridge(
                channel, user_id=self.settings.user_id, username=self.settings.username
            )
            if channel is not None
            else None
        )
        self._notify_cb = notify
        self._navigate_cb = navigate
        self._sessions: Dict[Tuple[str, ModeKind], _SessionResources] = {}

    # ==================== helpers ====================

    def _notify(self, level: str, message: str) -> None:
        if self._notify_cb is not None:
            self._notify_cb(level, message)
        else:
            logger.info(f"[{level}] {message}")

    def _fail(self, kind: ErrorKind, message: str) -> OperationResult:
        logger.warning(f"{kind.value}: {message}")
        self._notify("error", message)
        return OperationResult.failure(kind, message)

    def _on_storage_error(self, key: CodeKey, error: Exception) -> None:
        # CodeStore already logged it.
        self._notify("error", f"Code storage failed for {key[1]}: {error}")

    def _resources(self, session: Session) -> _SessionResources | None:
        res = self._sessions.get((session.problem_id, session.mode.kind))
        if res is None or res.session is not session:
            return None
        return res

    def _is_open(self, res: _SessionResources) -> bool:
        """False once close() has released the session's resources."""
        session = res.session
        return not session.closed and self._sessions.get((session.problem_id, session.mode.kind)) is res

    def _stale(self, res: _SessionResources, action: str) -> bool:
        if self._is_open(res):
            return False
        logger.debug(f"Dropping {action} result for closed session {res.session.session_id}")
        return True

    def _spawn(
        self, res: _SessionResources, coro: Coroutine[Any, Any, Any], name: str
    ) -> asyncio.Task | None:
        if not self._is_open(res):
            coro.close()
            return None
        task = asyncio.get_running_loop().create_task(coro, name=name)
        res.tasks.add(task)
        task.add_done_callback(res.tasks.discard)
        return task

    @staticmethod
    def _cancel_tasks(res: _SessionResources) -> None:
        current = asyncio.current_task()
        for task in list(res.tasks):
            if task is not current and not task.done():
                task.cancel()

    def _seed_code(self, session: Session) -> None:
        persisted = self.code_store.load(session.problem_id, session.language)
        session.code = persisted if persisted else session.problem.template_for(session.language)

    def sessions(self) -> list[Session]:
        return [res.session for res in self._sessions.values()]

    # ==================== timer ====================

    def _start_timer(self, res: _SessionResources) -> None:
        session = res.session
        timer = DeadlineTimer(self.settings.tick_seconds)
        res.timer = timer

        def on_tick(remaining: int) -> None:
            session.timer.remaining_seconds = remaining

        def on_expire() -> None:
            session.timer.remaining_seconds = 0
            session.timer.running = False
            if self._submission_started(session):
                logger.debug(f"Deadline passed for {session.session_id} with a submission already made")
                return
            logger.info(f"Time is up for session {session.session_id}; auto-submitting")
            self._notify("warning", "Time is up! Auto-submitting...")
            self._spawn(res, self._auto_submit(res), name=f"auto-submit-{session.session_id}")

        timer.start(session.timer.remaining_seconds, on_tick, on_expire)
        session.timer.running = True

    @staticmethod
    def _stop_timer(res: _SessionResources) -> None:
        if res.timer is not None:
            res.timer.stop()
        res.session.timer.running = False

    @staticmethod
    def _submission_started(session: Session) -> bool:
        return session.phase in (SubmissionPhase.SUBMITTING, SubmissionPhase.COMPLETED)

    async def _auto_submit(self, res: _SessionResources) -> None:
        # A probe still in flight must land before the deadline submit starts.
        if res.session.phase is SubmissionPhase.RUNNING:
            await res.idle.wait()
        if self._submission_started(res.session):
            return
        await self.request_submit(res.session, SubmitTrigger.TIMER_EXPIRY)

    def toggle_timer(self, session: Session, enabled: bool) -> OperationResult:
        """Turn the solo countdown on or off.

        Enabling resumes from the remaining seconds (or the default limit when
        nothing is left); disabling stops ticking without resetting.
        """
        res = self._resources(session)
        if res is None or not session.active:
            return self._fail(ErrorKind.INVALID_STATE, "Session is not open")
        if not isinstance(session.mode, Solo):
            return self._fail(ErrorKind.INVALID_STATE, "The timer is only available in solo practice")
        if session.phase in (SubmissionPhase.SUBMITTING, SubmissionPhase.COMPLETED):
            return self._fail(ErrorKind.INVALID_STATE, "The timer cannot change after submitting")

        if not enabled:
            self._stop_timer(res)
            session.timer.enabled = False
            return OperationResult.success(session.timer)

        session.timer.enabled = True
        if not session.timer.running:
            if session.timer.remaining_seconds <= 0:
                session.timer.remaining_seconds = self.settings.default_time_limit_seconds
            self._start_timer(res)
        return OperationResult.success(session.timer)

    # ==================== lifecycle ====================

    async def open(
        self,
        problem_id: str,
        mode: Mode,
        language: str,
        problem: Mapping[str, Any] | ProblemData | None,
        *,
        timer_enabled: bool | None = None,
        time_limit_seconds: int | None = None,
    ) -> OperationResult:
        """Open a session and acquire its resources.

        Args:
            problem_id: Problem being solved
            mode: Solo(), Match(match_id) or Contest(contest_id)
            language: Editor language, e.g. "cpp"
            problem: Problem payload from the problem source
            timer_enabled: Solo only; defaults to settings.timer_enabled_by_default
            time_limit_seconds: Solo only; defaults to settings.default_time_limit_seconds

        Returns:
            OperationResult with the new Session as value, or:
            - MissingProblemData when the problem payload is absent/invalid
            - InvalidState for bad identifiers or an already-open session
            - BackendUnavailable when the match channel cannot be joined

        Code seeding: the persisted copy for (problemId, language) wins when
        non-empty; otherwise the function-signature template is used.
        """
        try:
            problem_id = InputSanitizer.sanitize_identifier(problem_id)
            language = InputSanitizer.sanitize_language(language)
        except ValueError as e:
            return self._fail(ErrorKind.INVALID_STATE, str(e))

        try:
            problem_data = ProblemData.from_source(problem)
        except ValueError as e:
            return self._fail(ErrorKind.MISSING_PROBLEM_DATA, f"Failed to load problem: {e}")

        key = (problem_id, mode.kind)
        if key in self._sessions:
            return self._fail(ErrorKind.INVALID_STATE, f"A {mode.kind} session for {problem_id} is already open")

        session = Session(
            session_id=str(uuid.uuid4()),
            problem_id=problem_id,
            mode=mode,
            language=language,
            problem=problem_data,
        )
        self._seed_code(session)
        res = _SessionResources(session)
        res.idle.set()
        stack = res.stack

        try:
            stack.callback(self._release_code, session)
            if isinstance(mode, Match) and self._bridge is not None:
                res.subscription = await self._bridge.subscribe(
                    session, mode.match_id, self._on_opponent_submitted
                )
                stack.push_async_callback(res.subscription.close)
            stack.callback(self._cancel_tasks, res)
            if isinstance(mode, Solo):
                session.timer.enabled = (
                    self.settings.timer_enabled_by_default if timer_enabled is None else timer_enabled
                )
                session.timer.remaining_seconds = (
                    self.settings.default_time_limit_seconds
                    if time_limit_seconds is None
                    else max(0, int(time_limit_seconds))
                )
                stack.callback(self._stop_timer, res)
                if session.timer.enabled:
                    self._start_timer(res)
        except Exception as e:
            await stack.aclose()
            return self._fail(ErrorKind.BACKEND_UNAVAILABLE, f"Failed to open session: {e}")
        except BaseException:
            await stack.aclose()
            raise

        self._sessions[key] = res
        logger.info(
            f"Opened {mode.kind} session {session.session_id} for {problem_id} ({language})"
        )
        return OperationResult.success(session)

    def _release_code(self, session: Session) -> None:
        self.code_store.flush(session.problem_id, session.language)

    async def close(self, session: Session) -> OperationResult:
        """Release the timer, pending write, tasks and subscription. Idempotent."""
        res = self._resources(session)
        if res is None:
            session.closed = True
            return OperationResult.success(session)
        del self._sessions[(session.problem_id, session.mode.kind)]
        session.closed = True
        try:
            await res.stack.aclose()
        except Exception as e:
            return self._fail(ErrorKind.BACKEND_UNAVAILABLE, f"Failed to release session: {e}")
        finally:
            session.timer.running = False
        logger.info(f"Closed session {session.session_id}")
        return OperationResult.success(session)

    async def aclose(self) -> None:
        for res in list(self._sessions.values()):
            await self.close(res.session)

    @asynccontextmanager
    async def session(
        self,
        problem_id: str,
        mode: Mode,
        language: str,
        problem: Mapping[str, Any] | ProblemData | None,
        **options: Any,
    ) -> AsyncIterator[OperationResult]:
        """Scoped session: yields the open() result and closes on exit."""
        opened = await self.open(problem_id, mode, language, problem, **options)
        try:
            yield opened
        finally:
            if opened.ok:
                await self.close(opened.value)

    # ==================== editing ====================

    def set_code(self, session: Session, text: str) -> OperationResult:
        if self._resources(session) is None or not session.active:
            return self._fail(ErrorKind.INVALID_STATE, "Session is not open")
        session.code = text
        self.code_store.set_code(session.problem_id, session.language, text)
        return OperationResult.success(text)

    def reset_code(self, session: Session) -> OperationResult:
        """Replace the buffer with the language's function-signature template."""
        return self.set_code(session, session.problem.template_for(session.language))

    def change_language(self, session: Session, language: str) -> OperationResult:
        if self._resources(session) is None or not session.active:
            return self._fail(ErrorKind.INVALID_STATE, "Session is not open")
        if session.busy:
            return self._fail(ErrorKind.INVALID_STATE, "Cannot switch language while code is running")
        try:
            language = InputSanitizer.sanitize_language(language)
        except ValueError as e:
            return self._fail(ErrorKind.INVALID_STATE, str(e))
        if language == session.language:
            return OperationResult.success(session.code)

        self.code_store.flush(session.problem_id, session.language)
        session.language = language
        self._seed_code(session)
        logger.debug(f"Session {session.session_id} switched to {language}")
        return OperationResult.success(session.code)

    # ==================== judge calls ====================

    def _reject_start(self, session: Session, *, user: bool) -> OperationResult | None:
        """Synchronous admission check for run/submit."""
        if self._resources(session) is None or session.closed:
            return self._fail(ErrorKind.INVALID_STATE, "Session is not open")
        if session.gave_up:
            return self._fail(ErrorKind.INVALID_STATE, "You gave up this match")
        if session.phase is SubmissionPhase.RUNNING:
            return self._fail(ErrorKind.INVALID_STATE, "Busy: code is already running")
        if session.phase is SubmissionPhase.SUBMITTING:
            return self._fail(ErrorKind.INVALID_STATE, "Busy: a submission is already in flight")
        if session.phase is SubmissionPhase.COMPLETED:
            return self._fail(ErrorKind.INVALID_STATE, "Code has already been submitted")
        if user and not session.code.strip():
            return self._fail(ErrorKind.INVALID_STATE, "Please write some code first")
        return None

    async def request_run(self, session: Session) -> OperationResult:
        """Probe the code against one case. Idle -> Running -> Idle."""
        rejection = self._reject_start(session, user=True)
        if rejection is not None:
            return rejection
        res = self._resources(session)
        session.phase = SubmissionPhase.RUNNING
        res.idle.clear()
        try:
            outcome = await self._router.run(
                session.mode, session.problem_id, session.code, session.language
            )
        except Exception as e:
            message = f"Failed to run code: {e}"
            if self._stale(res, "run"):
                return OperationResult.failure(ErrorKind.BACKEND_UNAVAILABLE, message)
            return self._fail(ErrorKind.BACKEND_UNAVAILABLE, message)
        finally:
            if session.phase is SubmissionPhase.RUNNING:
                session.phase = SubmissionPhase.IDLE
            res.idle.set()

        if self._stale(res, "run"):
            return OperationResult.success(outcome)
        session.run_outcome = outcome
        session.last_outcome = outcome
        session.last_outcome_source = OutcomeSource.RUN
        if outcome.accepted:
            self._notify("success", "Test case passed!")
        else:
            self._notify("error", outcome.status.value)
        return OperationResult.success(outcome)

    def _complete_submission(self, res: _SessionResources, outcome: TestOutcome) -> None:
        session = res.session
        session.phase = SubmissionPhase.COMPLETED
        session.submit_outcome = outcome
        session.last_outcome = outcome
        session.last_outcome_source = OutcomeSource.SUBMIT
        self._stop_timer(res)

    async def request_submit(
        self, session: Session, trigger: SubmitTrigger = SubmitTrigger.USER
    ) -> OperationResult:
        """Submit the buffer through the mode's judge operation.

        Idle -> Submitting -> Completed. Timer-expiry submits go through even
        with an empty buffer; the judge decides.
        """
        rejection = self._reject_start(session, user=trigger is SubmitTrigger.USER)
        if rejection is not None:
            return rejection
        res = self._resources(session)
        session.phase = SubmissionPhase.SUBMITTING
        logger.info(f"Submitting session {session.session_id} ({trigger.value})")

        try:
            receipt = await self._router.submit(
                session.mode, session.problem_id, session.code, session.language
            )
        except Exception as e:
            message = f"Failed to submit code: {e}"
            if self._stale(res, "submit"):
                return OperationResult.failure(ErrorKind.BACKEND_UNAVAILABLE, message)
            self._complete_submission(res, failure_outcome(str(e)))
            return self._fail(ErrorKind.BACKEND_UNAVAILABLE, message)

        if self._stale(res, "submit"):
            return OperationResult.success(receipt)
        self._complete_submission(res, receipt.outcome)
        await self._after_submit(res, receipt)
        return OperationResult.success(receipt)

    async def _after_submit(self, res: _SessionResources, receipt: SubmitReceipt) -> None:
        session = res.session
        if receipt.notify_opponent and self._bridge is not None and isinstance(session.mode, Match):
            try:
                await self._bridge.announce_submission(session.mode.match_id)
            except Exception as e:
                # Best-effort signal; the submission itself already succeeded.
                logger.warning(f"Could not notify opponent in {session.mode.match_id}: {e}")
            if self._stale(res, "submit"):
                return
        if receipt.redirect_to is not None:
            self._schedule_redirect(res, receipt.redirect_to, receipt.redirect_delay)

        outcome = receipt.outcome
        if outcome.status is OutcomeStatus.ACCEPTED:
            self._notify("success", "Accepted!")
        else:
            self._notify("error", f"{outcome.status.value} ({outcome.cases_passed}/{outcome.cases_total})")

    def _schedule_redirect(self, res: _SessionResources, path: str, delay: float) -> None:
        async def redirect() -> None:
            await asyncio.sleep(delay)
            logger.debug(f"Redirecting to {path}")
            if self._navigate_cb is not None:
                self._navigate_cb(path)

        self._spawn(res, redirect(), name=f"redirect-{res.session.session_id}")

    # ==================== match ====================

    def _on_opponent_submitted(self, event: SubmissionEvent) -> None:
        username = event.get("username") or "Your opponent"
        self._notify("info", f"{username} submitted their code!")

    async def give_up(self, session: Session) -> OperationResult:
        """Forfeit a match. Independent of the submission phase."""
        res = self._resources(session)
        if not isinstance(session.mode, Match):
            return self._fail(ErrorKind.INVALID_STATE, "Cannot give up outside a match")
        if res is None or not session.active:
            return self._fail(ErrorKind.INVALID_STATE, "Session is not open")

        match_id = session.mode.match_id
        try:
            response = await self._judge.give_up(match_id)
        except Exception as e:
            message = f"Failed to give up: {e}"
            if self._stale(res, "give-up"):
                return OperationResult.failure(ErrorKind.BACKEND_UNAVAILABLE, message)
            return self._fail(ErrorKind.BACKEND_UNAVAILABLE, message)

        if self._stale(res, "give-up"):
            return OperationResult.success(response)
        session.gave_up = True
        self._stop_timer(res)
        if res.subscription is not None:
            await res.subscription.close()
        logger.info(f"Gave up match {match_id}")
        message = response.get("message") if isinstance(response, Mapping) else None
        self._notify("info", message or "You gave up the match")
        self._schedule_redirect(res, f"/results/{match_id}", self.settings.give_up_redirect_seconds)
        return OperationResult.success(response)
