import math

from codearena_core import Contest, Match, OutcomeStatus, Solo, TestOutcome, failure_outcome, normalize


def _assert_invariants(outcome: TestOutcome):
    assert 0 <= outcome.cases_passed <= outcome.cases_total
    accepted = outcome.status is OutcomeStatus.ACCEPTED
    assert accepted == (outcome.cases_passed == outcome.cases_total and outcome.cases_total > 0)


def test_probe_error_maps_to_runtime_error():
    outcome = normalize(Solo(), {"status": "error", "error": "segfault"}, shape="probe")
    assert outcome.status is OutcomeStatus.RUNTIME_ERROR
    assert outcome.cases_passed == 0
    assert outcome.cases_total == 1
    assert outcome.cases[0].index == 0
    assert outcome.cases[0].error == "segfault"
    assert outcome.raw_errors == ("segfault",)


def test_probe_success_and_wrong_answer():
    ok = normalize(Solo(), {"status": "success", "output": "3", "expectedOutput": "3"}, shape="probe")
    assert ok.status is OutcomeStatus.ACCEPTED
    assert (ok.cases_passed, ok.cases_total) == (1, 1)
    assert ok.cases[0].actual_output == "3"

    wrong = normalize(Solo(), {"status": "failed", "output": "4", "expectedOutput": "3"}, shape="probe")
    assert wrong.status is OutcomeStatus.WRONG_ANSWER
    assert (wrong.cases_passed, wrong.cases_total) == (0, 1)


def test_probe_success_wins_over_error_field():
    outcome = normalize(Solo(), {"passed": True, "error": "warning: unused variable"}, shape="probe")
    assert outcome.status is OutcomeStatus.ACCEPTED


def test_probe_uses_requested_case_index():
    outcome = normalize(Solo(), {"status": "Accepted"}, shape="probe", case_index=2)
    assert outcome.cases[0].index == 2


def test_submission_keeps_recognized_status_and_measures():
    raw = {
        "status": "Wrong Answer",
        "testCasesPassed": 3,
        "totalTestCases": 5,
        "executionTime": 12,
        "memoryUsed": "7.5",
        "testResults": [
            {"passed": True, "input": "1 2", "expectedOutput": "3", "output": "3"},
            {"index": 1, "passed": False, "input": "2 2", "expectedOutput": "4", "actualOutput": "5"},
        ],
    }
    outcome = normalize(Solo(), raw)
    assert outcome.status is OutcomeStatus.WRONG_ANSWER
    assert (outcome.cases_passed, outcome.cases_total) == (3, 5)
    assert outcome.execution_time_ms == 12.0
    assert outcome.memory_mb == 7.5
    assert [c.index for c in outcome.cases] == [0, 1]
    assert outcome.cases[0].actual_output == "3"
    assert outcome.cases[1].actual_output == "5"


def test_submission_label_variants():
    assert normalize(Contest("c1"), {"status": "accepted", "testCasesPassed": 2, "totalTestCases": 2}).status is OutcomeStatus.ACCEPTED
    assert normalize(Solo(), {"status": "TIME_LIMIT_EXCEEDED", "totalTestCases": 2}).status is OutcomeStatus.TIME_LIMIT_EXCEEDED
    assert normalize(Solo(), {"status": "Compilation Error", "totalTestCases": 2}).status is OutcomeStatus.COMPILE_ERROR
    assert normalize(Solo(), {"status": "Runtime Error", "totalTestCases": 2}).status is OutcomeStatus.RUNTIME_ERROR
    assert normalize(Solo(), {"status": "Memory Limit Exceeded", "totalTestCases": 2}).status is OutcomeStatus.UNKNOWN


def test_accepted_label_without_full_pass_is_downgraded():
    partial = normalize(Solo(), {"status": "Accepted", "testCasesPassed": 1, "totalTestCases": 3})
    assert partial.status is OutcomeStatus.WRONG_ANSWER
    _assert_invariants(partial)

    empty = normalize(Solo(), {"status": "Accepted"})
    assert empty.status is OutcomeStatus.UNKNOWN
    assert empty.cases_total == 0


def test_failing_label_never_reports_all_passed():
    outcome = normalize(Solo(), {"status": "Time Limit Exceeded", "testCasesPassed": 4, "totalTestCases": 4})
    assert outcome.status is OutcomeStatus.TIME_LIMIT_EXCEEDED
    assert outcome.cases_passed == 3
    _assert_invariants(outcome)


def test_counts_are_clamped_and_derived():
    over = normalize(Solo(), {"status": "Wrong Answer", "testCasesPassed": 9, "totalTestCases": 4})
    assert over.cases_passed <= over.cases_total
    _assert_invariants(over)

    derived = normalize(
        Solo(),
        {"status": "Accepted", "testResults": [{"passed": True}, {"passed": True}]},
    )
    assert (derived.cases_passed, derived.cases_total) == (2, 2)
    assert derived.status is OutcomeStatus.ACCEPTED


def test_malformed_inputs_degrade_to_unknown():
    samples = [
        None,
        "oops",
        42,
        [],
        {},
        {"status": None, "testCasesPassed": "abc", "totalTestCases": -3},
        {"status": 7, "executionTime": math.inf, "memoryUsed": "lots"},
        {"testResults": ["x", None, {"passed": "yes"}]},
        {"totalTestCases": True, "testCasesPassed": False},
    ]
    for raw in samples:
        outcome = normalize(Match("m1"), raw)
        _assert_invariants(outcome)
        probe = normalize(Match("m1"), raw, shape="probe")
        _assert_invariants(probe)
        assert probe.cases_total == 1

    garbage = normalize(Solo(), {"status": 7, "executionTime": math.inf, "memoryUsed": "lots"})
    assert garbage.status is OutcomeStatus.UNKNOWN
    assert garbage.execution_time_ms is None
    assert garbage.memory_mb is None


def test_normalize_is_deterministic_and_idempotent():
    raw = {"status": "Wrong Answer", "testCasesPassed": 1, "totalTestCases": 2, "error": "diff"}
    first = normalize(Solo(), raw)
    assert normalize(Solo(), raw) == first
    assert normalize(Solo(), first) is first


def test_errors_are_collected_in_order_without_duplicates():
    raw = {
        "status": "Compile Error",
        "error": "expected ';'",
        "compileOutput": "main.cpp:3: expected ';'",
        "errors": ["expected ';'", "", None, "1 error generated"],
    }
    outcome = normalize(Solo(), raw)
    assert outcome.raw_errors == ("expected ';'", "main.cpp:3: expected ';'", "1 error generated")


def test_failure_outcome_is_unknown_and_consistent():
    outcome = failure_outcome("connection refused")
    assert outcome.status is OutcomeStatus.UNKNOWN
    assert outcome.raw_errors == ("connection refused",)
    _assert_invariants(outcome)
    assert outcome.as_dict()["status"] == "Unknown"
