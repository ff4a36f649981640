"""Render a human-readable markdown report for a finished run."""

from __future__ import annotations

from suitekit.types import TestRun


def render_run_md(run: TestRun, max_failures: int = 10) -> str:
    s = run.summary
    lines = [
        "# Test Run Report",
        "",
        f"**Run ID:** `{run.id}`",
        f"**Status:** `{run.status.value}`",
        f"**Run at:** {run.run_at.isoformat()}",
    ]
    if run.model_override:
        lines.append(f"**Model:** `{run.model_override.provider}/{run.model_override.model}`")
    if run.iterations:
        lines.append(f"**Iterations:** {run.iterations}")
    if run.note:
        lines.append(f"**Note:** {run.note}")
    lines.extend([
        "",
        f"**Total:** {s.total} | **Passed:** {s.passed} | **Failed:** {s.failed} | "
        f"**Avg time:** {s.avg_response_time:g}ms"
        + (f" | **Avg score:** {s.avg_score:.2f}" if s.avg_score is not None else ""),
        "",
    ])

    failures = [r for r in run.results if not r.passed]
    if failures:
        lines.append("## Failures")
        lines.append("")
        for r in failures[:max_failures]:
            label = r.test_case_name
            if r.iteration:
                label += f" (#{r.iteration})"
            reasons = "; ".join(r.validation_errors) or r.error or "no reason"
            lines.append(f"- **{label}**: {reasons}")
        if len(failures) > max_failures:
            lines.append(f"- ... and {len(failures) - max_failures} more")
        lines.append("")

    return "\n".join(lines)
