"""Compare two runs case by case and flag regressions."""

from __future__ import annotations

from typing import Optional

from suitekit.rounding import round_half_up
from suitekit.types import (
    ComparisonStatus,
    ComparisonSummary,
    ResultSnapshot,
    RunComparison,
    RunReference,
    TestCaseComparison,
    TestResult,
    TestRun,
    TestRunSummary,
)

SCORE_THRESHOLD = 0.05

_STATUS_ORDER = {
    ComparisonStatus.regressed: 0,
    ComparisonStatus.improved: 1,
    ComparisonStatus.new: 2,
    ComparisonStatus.unchanged: 3,
    ComparisonStatus.removed: 4,
}


def _snapshot(result: Optional[TestResult]) -> Optional[ResultSnapshot]:
    if result is None:
        return None
    return ResultSnapshot(
        passed=result.passed,
        score=result.judge_score,
        response_time_ms=result.response_time_ms,
        output=result.output or "",
        error=result.error,
        validation_errors=list(result.validation_errors),
    )


def _pass_rate(summary: TestRunSummary) -> float:
    return summary.passed / summary.total if summary.total > 0 else 0.0


def _classify(base: TestResult, comp: TestResult, score_delta: Optional[float]) -> ComparisonStatus:
    # A pass-state change always decides; score only breaks ties.
    if not base.passed and comp.passed:
        return ComparisonStatus.improved
    if base.passed and not comp.passed:
        return ComparisonStatus.regressed
    if score_delta is not None and abs(score_delta) > SCORE_THRESHOLD:
        return ComparisonStatus.improved if score_delta > 0 else ComparisonStatus.regressed
    return ComparisonStatus.unchanged


def compare_case(
    test_case_id: str,
    base: Optional[TestResult],
    comp: Optional[TestResult],
) -> TestCaseComparison:
    name = (comp.test_case_name if comp else None) or (base.test_case_name if base else None) or "Unknown"
    entry = TestCaseComparison(
        test_case_id=test_case_id,
        test_case_name=name,
        status=ComparisonStatus.unchanged,
        baseline=_snapshot(base),
        compare=_snapshot(comp),
    )

    if base is None:
        entry.status = ComparisonStatus.new
    elif comp is None:
        entry.status = ComparisonStatus.removed
    else:
        if base.judge_score is not None and comp.judge_score is not None:
            entry.score_delta = round_half_up(comp.judge_score - base.judge_score, 4)
        entry.response_time_delta = comp.response_time_ms - base.response_time_ms
        entry.status = _classify(base, comp, entry.score_delta)
    return entry


def compare_runs(baseline: TestRun, compare: TestRun) -> RunComparison:
    """Case-level diff of ``compare`` against ``baseline``.

    Results are keyed by test case ID (last one wins when a run holds
    several iterations of the same case) and ordered regressed, improved,
    new, unchanged, removed.
    """
    base_index = {r.test_case_id: r for r in baseline.results}
    comp_index = {r.test_case_id: r for r in compare.results}

    ids = list(base_index)
    ids.extend(i for i in comp_index if i not in base_index)

    cases = [compare_case(i, base_index.get(i), comp_index.get(i)) for i in ids]
    cases.sort(key=lambda c: _STATUS_ORDER[c.status])

    counts = {status: 0 for status in ComparisonStatus}
    for case in cases:
        counts[case.status] += 1

    base_summary = baseline.summary
    comp_summary = compare.summary
    avg_score_delta = None
    if base_summary.avg_score is not None and comp_summary.avg_score is not None:
        avg_score_delta = round_half_up((comp_summary.avg_score - base_summary.avg_score) * 1000) / 10

    summary = ComparisonSummary(
        improved=counts[ComparisonStatus.improved],
        regressed=counts[ComparisonStatus.regressed],
        unchanged=counts[ComparisonStatus.unchanged],
        new=counts[ComparisonStatus.new],
        removed=counts[ComparisonStatus.removed],
        pass_rate_delta=round_half_up((_pass_rate(comp_summary) - _pass_rate(base_summary)) * 1000) / 10,
        avg_score_delta=avg_score_delta,
        avg_response_time_delta=comp_summary.avg_response_time - base_summary.avg_response_time,
    )

    return RunComparison(
        baseline=RunReference(run_id=baseline.id, run_at=baseline.run_at, summary=base_summary),
        compare=RunReference(run_id=compare.id, run_at=compare.run_at, summary=comp_summary),
        summary=summary,
        test_cases=cases,
    )


def has_regressions(comparison: RunComparison) -> bool:
    return comparison.summary.regressed > 0


def _fmt_delta(value: Optional[float], suffix: str = "") -> str:
    if value is None:
        return ""
    return f"{value:+g}{suffix}"


def render_comparison_md(comparison: RunComparison) -> str:
    """Render a comparison as markdown."""
    s = comparison.summary
    lines = [
        "# Run Comparison",
        "",
        f"Baseline: `{comparison.baseline.run_id}`",
        f"Compare:  `{comparison.compare.run_id}`",
        "",
    ]

    if s.regressed:
        lines.append(f"**STATUS: {s.regressed} REGRESSION(S) DETECTED**")
    else:
        lines.append("**STATUS: No regressions**")
    lines.append("")

    lines.append("| Improved | Regressed | Unchanged | New | Removed | Pass rate Δ | Avg score Δ | Avg time Δ |")
    lines.append("|----------|-----------|-----------|-----|---------|-------------|-------------|------------|")
    lines.append(
        f"| {s.improved} | {s.regressed} | {s.unchanged} | {s.new} | {s.removed} "
        f"| {_fmt_delta(s.pass_rate_delta, ' pp')} | {_fmt_delta(s.avg_score_delta, ' pp')} "
        f"| {_fmt_delta(s.avg_response_time_delta, 'ms')} |"
    )
    lines.append("")

    lines.append("| Test case | Status | Baseline | Compare | Score Δ | Time Δ |")
    lines.append("|-----------|--------|----------|---------|---------|--------|")
    for case in comparison.test_cases:
        base = _cell(case.baseline)
        comp = _cell(case.compare)
        lines.append(
            f"| {case.test_case_name} | {case.status.value} | {base} | {comp} "
            f"| {_fmt_delta(case.score_delta)} | {_fmt_delta(case.response_time_delta, 'ms')} |"
        )

    lines.append("")
    return "\n".join(lines)


def _cell(snapshot: Optional[ResultSnapshot]) -> str:
    if snapshot is None:
        return "-"
    label = "PASS" if snapshot.passed else "FAIL"
    if snapshot.score is not None:
        label += f" ({snapshot.score:.2f})"
    return label
