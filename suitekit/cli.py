"""CLI entrypoint for suitekit."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from suitekit.config import settings
from suitekit.errors import PreconditionError, UnknownProviderError
from suitekit.logging import setup_logging
from suitekit.types import Credentials, ModelOverride, TestRun

app = typer.Typer(name="suitekit", help="Run LLM test suites and compare runs.")
console = Console()


def _print_run(run: TestRun) -> None:
    s = run.summary
    colour = "green" if run.status == "completed" and s.failed == 0 else "yellow"
    console.print(f"\n[bold {colour}]Run {run.status.value}:[/] {run.id}")
    console.print(f"  passed: {s.passed}/{s.total}")
    console.print(f"  failed: {s.failed}/{s.total}")
    console.print(f"  avg response time: {s.avg_response_time:g}ms")
    if s.avg_score is not None:
        console.print(f"  avg judge score: {s.avg_score:.2f}")

    table = Table(title="Results")
    table.add_column("Test case", style="cyan")
    table.add_column("Iter", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Time", justify="right")
    table.add_column("Errors")
    for r in run.results:
        status = "[green]PASS[/]" if r.passed else "[red]FAIL[/]"
        table.add_row(
            r.test_case_name,
            str(r.iteration or ""),
            status,
            f"{r.response_time_ms}ms",
            "; ".join(r.validation_errors),
        )
    console.print(table)


@app.command()
def run(
    suite: str = typer.Option(..., help="Path to a YAML or JSON suite file"),
    stream: bool = typer.Option(False, help="Print progress events as they happen"),
    iterations: int = typer.Option(1, help="Run every case N times (1-100)"),
    tag: list[str] = typer.Option([], "--tag", help="Only cases carrying this tag (repeatable)"),
    case: list[str] = typer.Option([], "--case", help="Only this case ID (repeatable, wins over --tag)"),
    parallel: bool = typer.Option(False, help="Run cases concurrently"),
    concurrency: int = typer.Option(settings.max_concurrency, help="Worker pool size with --parallel"),
    provider: str = typer.Option("", help="Override the provider of the prompt target"),
    model: str = typer.Option("", help="Override the model of the prompt target"),
    note: str = typer.Option("", help="Free-text note stored on the run"),
    out: str = typer.Option("", help="Output path (default: <RUNS_DIR>/<run id>.json)"),
    md: str = typer.Option("", help="Also write a markdown report here"),
) -> None:
    """Execute a test suite and write the resulting TestRun as JSON."""
    setup_logging(settings.log_level)
    from suitekit.reporting.render_md import render_run_md
    from suitekit.runners.orchestrator import RunRequest
    from suitekit.suites import load_suite, write_run

    path = Path(suite)
    if not path.exists():
        console.print(f"[red]Suite file not found:[/] {path}")
        raise typer.Exit(code=1)
    loaded = load_suite(path)

    override = None
    if provider or model:
        if not (provider and model):
            console.print("[red]--provider and --model must be given together[/]")
            raise typer.Exit(code=1)
        override = ModelOverride(provider=provider, model=model)

    request = RunRequest(
        target_type=loaded.target_type,
        target=loaded.target,
        target_version=loaded.target_version,
        test_cases=loaded.test_cases,
        validation_rules=loaded.validation_rules,
        judge_config=loaded.judge_config,
        credentials=Credentials(keys=settings.provider_keys()),
        model_override=override,
        note=note or None,
        iterations=iterations,
        tags=tag,
        test_case_ids=case,
        parallel_execution=parallel,
        max_concurrency=max(1, concurrency),
    )
    console.print(f"[dim]suite={loaded.name}  target={loaded.target_type}  cases={len(loaded.test_cases)}[/]")

    try:
        result = asyncio.run(_execute(request, stream))
    except PreconditionError as exc:
        result = None
        console.print(f"[red]{exc}[/]")
    if result is None:
        raise typer.Exit(code=1)

    _print_run(result)
    out_path = Path(out) if out else settings.runs_dir / f"{result.id}.json"
    write_run(result, out_path)
    console.print(f"[green]Run written to {out_path}[/]")
    if md:
        Path(md).write_text(render_run_md(result), encoding="utf-8")
        console.print(f"[green]Markdown written to {md}[/]")


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.timeout_s)


async def _execute(request, stream: bool) -> Optional[TestRun]:
    from suitekit.runners.orchestrator import execute_run
    from suitekit.runners.streaming import stream_run

    async with _http_client() as client:
        if stream:
            return await _consume_stream(stream_run(request, client=client))
        return await execute_run(request, client=client)


async def _consume_stream(events) -> Optional[TestRun]:
    final: Optional[TestRun] = None
    async for event in events:
        if event.name == "progress":
            console.print(
                f"[dim][{event.current}/{event.total}][/] {event.test_case_name}"
                + (f" (iteration {event.iteration})" if event.iteration > 1 else "")
            )
        elif event.name == "result":
            mark = "[green]PASS[/]" if event.result.passed else "[red]FAIL[/]"
            console.print(f"  {mark} {event.result.response_time_ms}ms")
        elif event.name == "error":
            console.print(f"  [red]error:[/] {event.message}")
        elif event.name == "complete":
            final = event.test_run
    return final


@app.command()
def compare(
    baseline: str = typer.Option(..., help="Baseline TestRun JSON file"),
    run_path: str = typer.Option(..., "--run", help="TestRun JSON file to compare"),
    md: str = typer.Option("", help="Also write a markdown report here"),
    out: str = typer.Option("", help="Write the comparison JSON here"),
) -> None:
    """Compare a run against a baseline. Exits 1 on regressions."""
    setup_logging(settings.log_level)
    from suitekit.reporting.compare import compare_runs, has_regressions, render_comparison_md
    from suitekit.suites import load_run, write_comparison

    for p in (baseline, run_path):
        if not Path(p).exists():
            console.print(f"[red]Run file not found:[/] {p}")
            raise typer.Exit(code=1)

    comparison = compare_runs(load_run(baseline), load_run(run_path))
    s = comparison.summary

    table = Table(title="Comparison")
    table.add_column("Test case", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Score Δ", justify="right")
    table.add_column("Time Δ", justify="right")
    styles = {"regressed": "red", "improved": "green", "new": "blue", "removed": "yellow"}
    for c in comparison.test_cases:
        style = styles.get(c.status.value, "white")
        table.add_row(
            c.test_case_name,
            f"[{style}]{c.status.value}[/]",
            f"{c.score_delta:+.2f}" if c.score_delta is not None else "",
            f"{c.response_time_delta:+d}ms" if c.response_time_delta is not None else "",
        )
    console.print(table)
    console.print(
        f"improved={s.improved} regressed={s.regressed} unchanged={s.unchanged} "
        f"new={s.new} removed={s.removed} pass rate Δ={s.pass_rate_delta:+g}pp"
    )

    if md:
        Path(md).write_text(render_comparison_md(comparison), encoding="utf-8")
        console.print(f"[green]Markdown written to {md}[/]")
    if out:
        write_comparison(comparison, out)
        console.print(f"[green]Comparison written to {out}[/]")

    if has_regressions(comparison):
        console.print("[bold red]REGRESSION DETECTED[/]")
        raise typer.Exit(code=1)
    console.print("[bold green]No regressions.[/]")


@app.command()
def models(provider: str = typer.Argument("", help="Provider name (default: all)")) -> None:
    """List the models known for each provider."""
    from suitekit.adapters.registry import PROVIDER_LABELS, PROVIDERS, list_models

    names = [provider] if provider else list(PROVIDERS)
    table = Table(title="Models")
    table.add_column("Provider", style="cyan")
    table.add_column("Model")
    for name in names:
        try:
            available = list_models(name)
        except UnknownProviderError as exc:
            console.print(f"[red]{exc}[/]")
            raise typer.Exit(code=1)
        for m in available:
            table.add_row(PROVIDER_LABELS.get(name, name), m)
    console.print(table)


if __name__ == "__main__":
    app()
