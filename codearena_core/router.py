"""Mode-aware dispatch of run/submit calls to the judge.

The router holds no state: each call picks the backend operation for the
session's mode, awaits it, and normalizes the response. The in-flight
guard lives in SessionController, which checks and sets the phase before
calling in here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Mapping, Protocol, Union

from .results import TestOutcome, normalize

logger = logging.getLogger(__name__)

ModeKind = Literal["solo", "match", "contest"]


@dataclass(frozen=True)
class Solo:
    kind: ClassVar[ModeKind] = "solo"


@dataclass(frozen=True)
class Match:
    match_id: str
    kind: ClassVar[ModeKind] = "match"


@dataclass(frozen=True)
class Contest:
    contest_id: str
    kind: ClassVar[ModeKind] = "contest"


Mode = Union[Solo, Match, Contest]


class JudgeService(Protocol):
    async def run_probe(
        self, code: str, language: str, problem_id: str, case_index: int = 0
    ) -> Any:
        ...

    async def submit_solo(self, code: str, language: str, problem_id: str) -> Any:
        ...

    async def submit_match(self, match_id: str, code: str, language: str) -> Any:
        ...

    async def submit_contest(
        self, contest_id: str, problem_id: str, code: str, language: str
    ) -> Any:
        ...

    async def give_up(self, match_id: str) -> Any:
        ...


@dataclass(frozen=True)
class SubmitReceipt:
    """Normalized submit result plus the follow-up actions it calls for."""

    outcome: TestOutcome
    # Where to send the user afterwards, and after how long.
    redirect_to: str | None = None
    redirect_delay: float = 0.0
    notify_opponent: bool = False
    match_completed: bool = False
    contest_score: float | None = None
    contest_status: str | None = None


def _coerce_score(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _match_completed(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    match = raw.get("match")
    return isinstance(match, Mapping) and match.get("status") == "completed"


class SubmissionRouter:
    def __init__(
        self,
        judge: JudgeService,
        *,
        probe_case_index: int = 0,
        contest_redirect_seconds: float = 2.0,
        match_redirect_seconds: float = 2.0,
    ) -> None:
        self._judge = judge
        self._probe_case_index = probe_case_index
        self._contest_redirect_seconds = contest_redirect_seconds
        self._match_redirect_seconds = match_redirect_seconds

    async def run(self, mode: Mode, problem_id: str, code: str, language: str) -> TestOutcome:
        """Probe one case; every mode uses the same run endpoint."""
        raw = await self._judge.run_probe(code, language, problem_id, self._probe_case_index)
        return normalize(mode, raw, shape="probe", case_index=self._probe_case_index)

    async def submit(self, mode: Mode, problem_id: str, code: str, language: str) -> SubmitReceipt:
        """Submit through the backend operation owned by the mode.

        Backend errors propagate to the caller untouched.
        """
        if isinstance(mode, Contest):
            raw = await self._judge.submit_contest(mode.contest_id, problem_id, code, language)
            score = raw.get("score") if isinstance(raw, Mapping) else None
            status = raw.get("status") if isinstance(raw, Mapping) else None
            logger.info(f"Contest {mode.contest_id} submission for {problem_id}: {status}")
            return SubmitReceipt(
                outcome=normalize(mode, raw),
                redirect_to=f"/contests/{mode.contest_id}/live",
                redirect_delay=self._contest_redirect_seconds,
                contest_score=_coerce_score(score),
                contest_status=status if isinstance(status, str) else None,
            )

        if isinstance(mode, Match):
            raw = await self._judge.submit_match(mode.match_id, code, language)
            result = raw.get("executionResult", raw) if isinstance(raw, Mapping) else raw
            completed = _match_completed(raw)
            return SubmitReceipt(
                outcome=normalize(mode, result),
                redirect_to=f"/results/{mode.match_id}" if completed else None,
                redirect_delay=self._match_redirect_seconds if completed else 0.0,
                notify_opponent=True,
                match_completed=completed,
            )

        raw = await self._judge.submit_solo(code, language, problem_id)
        return SubmitReceipt(outcome=normalize(mode, raw))
