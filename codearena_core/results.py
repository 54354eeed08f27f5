"""Judge result normalization (canonical outcome for run and submit paths).

Single source of truth for what a judge response means:
- Probe (run) responses describe one case; the status is derived from
  success/error markers.
- Submission responses describe every case; the judge's status label is
  kept when recognized and mapped to Unknown otherwise.
- Counts are clamped so that 0 <= passed <= total and Accepted holds iff
  every case passed and there was at least one case.

normalize() is total: any input, including garbage, yields a TestOutcome.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

logger = logging.getLogger(__name__)

ResultShape = Literal["probe", "submission"]


class OutcomeStatus(str, Enum):
    ACCEPTED = "Accepted"
    WRONG_ANSWER = "WrongAnswer"
    RUNTIME_ERROR = "RuntimeError"
    TIME_LIMIT_EXCEEDED = "TimeLimitExceeded"
    COMPILE_ERROR = "CompileError"
    UNKNOWN = "Unknown"


# Judge labels are compared after lowercasing and stripping separators.
_STATUS_LABELS: dict[str, OutcomeStatus] = {
    "accepted": OutcomeStatus.ACCEPTED,
    "ac": OutcomeStatus.ACCEPTED,
    "wronganswer": OutcomeStatus.WRONG_ANSWER,
    "wa": OutcomeStatus.WRONG_ANSWER,
    "runtimeerror": OutcomeStatus.RUNTIME_ERROR,
    "re": OutcomeStatus.RUNTIME_ERROR,
    "timelimitexceeded": OutcomeStatus.TIME_LIMIT_EXCEEDED,
    "tle": OutcomeStatus.TIME_LIMIT_EXCEEDED,
    "compileerror": OutcomeStatus.COMPILE_ERROR,
    "compilationerror": OutcomeStatus.COMPILE_ERROR,
    "ce": OutcomeStatus.COMPILE_ERROR,
}

_PROBE_SUCCESS_LABELS = {"success", "accepted", "passed", "ok"}


@dataclass(frozen=True)
class CaseResult:
    index: int
    passed: bool
    input: Any = None
    expected_output: str | None = None
    actual_output: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "passed": self.passed,
            "input": self.input,
            "expectedOutput": self.expected_output,
            "actualOutput": self.actual_output,
            "error": self.error,
        }


@dataclass(frozen=True)
class TestOutcome:
    __test__ = False  # not a pytest class

    status: OutcomeStatus
    cases_passed: int
    cases_total: int
    execution_time_ms: float | None = None
    memory_mb: float | None = None
    cases: tuple[CaseResult, ...] = ()
    raw_errors: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.status is OutcomeStatus.ACCEPTED

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "casesPassed": self.cases_passed,
            "casesTotal": self.cases_total,
            "executionTimeMs": self.execution_time_ms,
            "memoryMb": self.memory_mb,
            "cases": [case.as_dict() for case in self.cases],
            "rawErrors": list(self.raw_errors),
        }


def _coerce_count(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return int(stripped, 10)
        except ValueError:
            return None
    return None


def _coerce_measure(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        stripped = value.strip().removesuffix("ms").removesuffix("MB").strip()
        if not stripped:
            return None
        try:
            parsed = float(stripped)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(parsed) or parsed < 0:
        return None
    return parsed


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return None


def _status_key(label: Any) -> str:
    if not isinstance(label, str):
        return ""
    return "".join(ch for ch in label.lower() if ch.isalnum())


def _collect_errors(raw: Mapping[str, Any]) -> tuple[str, ...]:
    errors: list[str] = []
    for key in ("error", "compileOutput", "stderr"):
        text = _coerce_text(raw.get(key))
        if text and text.strip():
            errors.append(text)
    extra = raw.get("errors")
    if isinstance(extra, (list, tuple)):
        for item in extra:
            text = _coerce_text(item)
            if text and text.strip():
                errors.append(text)
    # Keep first occurrence order, drop duplicates.
    return tuple(dict.fromkeys(errors))


def _parse_cases(items: Any) -> tuple[CaseResult, ...]:
    if not isinstance(items, (list, tuple)):
        return ()
    cases: list[CaseResult] = []
    for position, item in enumerate(items):
        if not isinstance(item, Mapping):
            continue
        index = _coerce_count(item.get("index"))
        actual = item.get("actualOutput", item.get("output"))
        cases.append(
            CaseResult(
                index=index if index is not None and index >= 0 else position,
                passed=item.get("passed") is True,
                input=item.get("input"),
                expected_output=_coerce_text(item.get("expectedOutput")),
                actual_output=_coerce_text(actual),
                error=_coerce_text(item.get("error")),
            )
        )
    return tuple(cases)


def _reconcile(status: OutcomeStatus, passed: int, total: int) -> tuple[OutcomeStatus, int]:
    """Force the status label and counts to agree.

    Accepted needs every case passed and at least one case; a failing label
    never reports every case as passed.
    """
    if status is OutcomeStatus.ACCEPTED:
        if total == 0:
            return OutcomeStatus.UNKNOWN, 0
        if passed < total:
            return OutcomeStatus.WRONG_ANSWER, passed
        return status, passed
    if total > 0 and passed == total:
        return status, total - 1
    return status, passed


def _normalize_probe(raw: Mapping[str, Any], case_index: int) -> TestOutcome:
    error = _coerce_text(raw.get("error"))
    has_error = bool(error and error.strip())
    if raw.get("passed") is True or _status_key(raw.get("status")) in _PROBE_SUCCESS_LABELS:
        status = OutcomeStatus.ACCEPTED
    elif has_error:
        status = OutcomeStatus.RUNTIME_ERROR
    else:
        status = OutcomeStatus.WRONG_ANSWER

    passed = status is OutcomeStatus.ACCEPTED
    case = CaseResult(
        index=case_index,
        passed=passed,
        input=raw.get("input"),
        expected_output=_coerce_text(raw.get("expectedOutput")),
        actual_output=_coerce_text(raw.get("actualOutput", raw.get("output"))),
        error=error,
    )
    return TestOutcome(
        status=status,
        cases_passed=1 if passed else 0,
        cases_total=1,
        execution_time_ms=_coerce_measure(raw.get("executionTime")),
        memory_mb=_coerce_measure(raw.get("memoryUsed")),
        cases=(case,),
        raw_errors=_collect_errors(raw),
    )


def _normalize_submission(raw: Mapping[str, Any]) -> TestOutcome:
    cases = _parse_cases(raw.get("testResults"))

    total = _coerce_count(raw.get("totalTestCases"))
    if total is None or total < 0:
        total = len(cases)
    passed = _coerce_count(raw.get("testCasesPassed"))
    if passed is None:
        passed = sum(1 for case in cases if case.passed)
    passed = max(0, min(passed, total))

    label = raw.get("status")
    status = _STATUS_LABELS.get(_status_key(label), OutcomeStatus.UNKNOWN)
    if status is OutcomeStatus.UNKNOWN and label is not None:
        logger.warning(f"Unrecognized judge status {label!r}; mapped to Unknown")
    status, passed = _reconcile(status, passed, total)

    return TestOutcome(
        status=status,
        cases_passed=passed,
        cases_total=total,
        execution_time_ms=_coerce_measure(raw.get("executionTime")),
        memory_mb=_coerce_measure(raw.get("memoryUsed")),
        cases=cases,
        raw_errors=_collect_errors(raw),
    )


def normalize(
    mode: Any,
    raw: Any,
    *,
    shape: ResultShape = "submission",
    case_index: int = 0,
) -> TestOutcome:
    """Map any judge response onto the canonical TestOutcome.

    Args:
        mode: Session mode the response belongs to (only used for logging)
        raw: Untrusted judge payload
        shape: "probe" for the single-case run path, "submission" otherwise
        case_index: Case the probe ran against

    Returns:
        TestOutcome; never raises. Passing an existing TestOutcome returns it
        unchanged.
    """
    if isinstance(raw, TestOutcome):
        return raw
    if not isinstance(raw, Mapping):
        logger.warning(f"Malformed judge response for {mode}: {type(raw).__name__}")
        return TestOutcome(
            status=OutcomeStatus.UNKNOWN,
            cases_passed=0,
            cases_total=1 if shape == "probe" else 0,
        )
    if shape == "probe":
        return _normalize_probe(raw, case_index)
    return _normalize_submission(raw)


def failure_outcome(message: str | None = None) -> TestOutcome:
    """Synthetic outcome for a submission whose judge call failed."""
    errors: Sequence[str] = (message,) if message else ()
    return TestOutcome(
        status=OutcomeStatus.UNKNOWN,
        cases_passed=0,
        cases_total=0,
        raw_errors=tuple(errors),
    )
