"""Session entity: one open problem under one mode."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .results import TestOutcome

if TYPE_CHECKING:
    from .router import Mode
    from .validation import ProblemData


class SubmissionPhase(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"
    SUBMITTING = "Submitting"
    COMPLETED = "Completed"


class SubmitTrigger(str, Enum):
    USER = "User"
    TIMER_EXPIRY = "TimerExpiry"


class OutcomeSource(str, Enum):
    RUN = "run"
    SUBMIT = "submit"


@dataclass
class TimerState:
    remaining_seconds: int = 0
    # Only meaningful in Solo mode; other modes never create a timer.
    enabled: bool = False
    running: bool = False


@dataclass(eq=False)
class Session:
    """
    Mutable state for one (problemId, mode) pair while it is open.

    Owned by SessionController; collaborators receive it by reference and
    only touch the fields documented for them (NotificationBridge sets
    opponent_submitted, nothing else).
    """

    session_id: str
    problem_id: str
    mode: "Mode"
    language: str
    problem: "ProblemData"
    code: str = ""
    timer: TimerState = field(default_factory=TimerState)
    phase: SubmissionPhase = SubmissionPhase.IDLE

    # The outcome the UI should show, plus where it came from.
    last_outcome: TestOutcome | None = None
    last_outcome_source: OutcomeSource | None = None
    run_outcome: TestOutcome | None = None
    submit_outcome: TestOutcome | None = None

    opponent_submitted: bool = False
    gave_up: bool = False
    closed: bool = False

    @property
    def busy(self) -> bool:
        return self.phase in (SubmissionPhase.RUNNING, SubmissionPhase.SUBMITTING)

    @property
    def active(self) -> bool:
        return not (self.closed or self.gave_up)

    def snapshot(self) -> dict:
        """Plain-dict view for UI layers and logs."""
        return {
            "sessionId": self.session_id,
            "problemId": self.problem_id,
            "mode": self.mode.kind,
            "language": self.language,
            "code": self.code,
            "timer": {
                "remainingSeconds": self.timer.remaining_seconds,
                "enabled": self.timer.enabled,
                "running": self.timer.running,
            },
            "submissionPhase": self.phase.value,
            "lastOutcome": self.last_outcome.as_dict() if self.last_outcome else None,
            "lastOutcomeSource": self.last_outcome_source.value if self.last_outcome_source else None,
            "opponentSubmitted": self.opponent_submitted,
            "gaveUp": self.gave_up,
            "closed": self.closed,
        }
