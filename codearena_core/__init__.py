from .code_store import CodeStore, JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .controller import ErrorKind, OperationResult, SessionController
from .http_judge import HttpJudgeService, JudgeError
from .notifications import (
    LocalChannel,
    NotificationBridge,
    NotificationChannel,
    SocketIOChannel,
    Subscription,
)
from .results import CaseResult, OutcomeStatus, TestOutcome, failure_outcome, normalize
from .router import Contest, JudgeService, Match, Mode, Solo, SubmissionRouter, SubmitReceipt
from .session import OutcomeSource, Session, SubmissionPhase, SubmitTrigger, TimerState
from .timer import DeadlineTimer, format_remaining, parse_timer_preset
from .types import RawProbeResult, RawSubmissionResult, SubmissionEvent
from .validation import InputSanitizer, ProblemData, SessionSettings

__all__ = [
    "CodeStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "ErrorKind",
    "OperationResult",
    "SessionController",
    "HttpJudgeService",
    "JudgeError",
    "LocalChannel",
    "NotificationBridge",
    "NotificationChannel",
    "SocketIOChannel",
    "Subscription",
    "CaseResult",
    "OutcomeStatus",
    "TestOutcome",
    "failure_outcome",
    "normalize",
    "Contest",
    "JudgeService",
    "Match",
    "Mode",
    "Solo",
    "SubmissionRouter",
    "SubmitReceipt",
    "OutcomeSource",
    "Session",
    "SubmissionPhase",
    "SubmitTrigger",
    "TimerState",
    "DeadlineTimer",
    "format_remaining",
    "parse_timer_preset",
    "RawProbeResult",
    "RawSubmissionResult",
    "SubmissionEvent",
    "InputSanitizer",
    "ProblemData",
    "SessionSettings",
]
