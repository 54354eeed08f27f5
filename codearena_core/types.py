"""Type definitions for raw judge payloads and channel events."""
from __future__ import annotations

from typing import Any, List, Optional, TypedDict


class RawCaseResult(TypedDict, total=False):
    """One entry of a judge's per-case breakdown."""
    index: int
    passed: bool
    input: Any
    expectedOutput: Optional[str]
    actualOutput: Optional[str]
    output: Optional[str]  # older judges use "output" instead of "actualOutput"
    error: Optional[str]


class RawProbeResult(TypedDict, total=False):
    """
    Single-case probe result returned by the run endpoint.

    The judge runs exactly one case (testCaseIndex, default 0) and reports
    a coarse status string instead of pass counts.
    """
    status: str  # 'success' | 'error' | 'Accepted' | 'Wrong Answer' ...
    passed: Optional[bool]
    output: Optional[str]
    expectedOutput: Optional[str]
    input: Any
    error: Optional[str]
    executionTime: Optional[float]
    memoryUsed: Optional[float]


class RawSubmissionResult(TypedDict, total=False):
    """
    Full multi-case judge result (solo, match and contest submissions).

    All fields are optional: the judge is untrusted and shapes drift
    between endpoints.
    """
    status: str
    testCasesPassed: int
    totalTestCases: int
    executionTime: Optional[float]
    memoryUsed: Optional[float]
    testResults: List[RawCaseResult]
    error: Optional[str]
    errors: List[str]
    compileOutput: Optional[str]
    stderr: Optional[str]

    # Contest-only extras
    score: Optional[float]


class RawMatchEnvelope(TypedDict, total=False):
    """Match submit response: the execution result is nested."""
    match: dict
    executionResult: RawSubmissionResult
    message: Optional[str]


class SubmissionEvent(TypedDict, total=False):
    """Payload exchanged on the match channel when a player submits."""
    matchId: str
    userId: Optional[str]
    username: Optional[str]


CodeKey = tuple[str, str]  # (problemId, language)
