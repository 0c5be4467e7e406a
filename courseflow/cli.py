"""courseflow command line: run workflows and check service health."""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from courseflow.config import get_settings
from courseflow.errors import InitError, StepError
from courseflow.logging_setup import setup_logging
from courseflow.orchestrator import Orchestrator

app = typer.Typer(name="courseflow", help="Course operations orchestrator")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override COURSEFLOW_LOG_LEVEL."
    ),
):
    setup_logging(log_level or get_settings().log_level)


def _orchestrator() -> Orchestrator:
    return Orchestrator(get_settings())


def _steps_table(workflow) -> Table:
    table = Table(title=f"Workflow {workflow.id} ({workflow.status.value})")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Error")
    for step in workflow.steps:
        table.add_row(str(step.index), step.name, step.status.value, step.error or "")
    return table


@app.command()
def run(
    week: int = typer.Argument(..., help="Week number to produce."),
    theme: Optional[str] = typer.Option(None, "--theme", help="Week theme."),
    qa: bool = typer.Option(True, "--qa/--no-qa", help="Run the quality assurance step."),
    release: bool = typer.Option(
        True, "--release/--no-release", help="Publish the weekly release."
    ),
    chunks: int = typer.Option(3, "--chunks", help="Content chunks to plan."),
    videos: int = typer.Option(7, "--videos", help="Videos to plan."),
    timeout: Optional[float] = typer.Option(
        None, "--step-timeout", help="Per-step timeout in seconds."
    ),
):
    """
    Run the content workflow for one week.
    """
    options = {
        "theme": theme,
        "runQA": qa,
        "createRelease": release,
        "chunkCount": chunks,
        "videoCount": videos,
        "stepTimeoutSeconds": timeout,
    }
    orch = _orchestrator()

    async def _run():
        await orch.start()
        return await orch.engine.execute_workflow(str(week), options)

    try:
        workflow = asyncio.run(_run())
    except ValueError as e:
        console.print(f"[bold red]Invalid week:[/] {e}")
        raise typer.Exit(code=2)
    except InitError as e:
        console.print(f"[bold red]Startup failed:[/] {e}")
        raise typer.Exit(code=1)
    except StepError as e:
        if e.workflow is not None:
            console.print(_steps_table(e.workflow))
        console.print(f"[bold red]Workflow failed:[/] {e}")
        raise typer.Exit(code=1)
    finally:
        orch.close()

    console.print(_steps_table(workflow))
    summary = workflow.results.get("completion", {})
    console.print(
        f"[bold green]Week {week} completed[/] in {workflow.duration_seconds}s: "
        f"{summary.get('work_items_created', 0)} work items, "
        f"{summary.get('chunks_created', 0)} chunks, "
        f"{summary.get('videos_planned', 0)} videos"
    )


@app.command()
def batch(
    start: int = typer.Argument(..., help="First week (inclusive)."),
    end: int = typer.Argument(..., help="Last week (inclusive)."),
    stop_on_error: bool = typer.Option(False, "--stop-on-error", help="Abort on the first failed week."),
    delay_ms: int = typer.Option(0, "--delay-ms", help="Pause between weeks, in milliseconds."),
    qa: bool = typer.Option(True, "--qa/--no-qa"),
    release: bool = typer.Option(True, "--release/--no-release"),
):
    """
    Run the content workflow for a range of weeks.
    """
    options = {
        "stopOnError": stop_on_error,
        "delayMs": delay_ms,
        "runQA": qa,
        "createRelease": release,
    }
    orch = _orchestrator()

    async def _run():
        await orch.start()
        return await orch.engine.execute_batch_workflow(start, end, options)

    try:
        result = asyncio.run(_run())
    except ValueError as e:
        console.print(f"[bold red]Invalid range:[/] {e}")
        raise typer.Exit(code=2)
    except (InitError, StepError) as e:
        console.print(f"[bold red]Batch failed:[/] {e}")
        raise typer.Exit(code=1)
    finally:
        orch.close()

    table = Table(title=f"Batch {result.id}")
    table.add_column("Week", justify="right")
    table.add_column("Status")
    table.add_column("Error")
    for entry in result.runs:
        table.add_row(entry.subject, entry.status.value, entry.error or "")
    console.print(table)

    s = result.summary
    console.print(
        f"{s.successful} successful, {s.failed} failed, "
        f"{s.total_chunks} chunks, {s.total_videos} videos, {s.total_work_items} work items"
    )
    if s.failed:
        raise typer.Exit(code=1)


@app.command()
def health(
    as_json: bool = typer.Option(False, "--json", help="Print the raw report."),
):
    """
    Initialize services and print their health.
    """
    orch = _orchestrator()

    async def _run():
        try:
            await orch.start()
        except InitError as e:
            console.print(f"[bold red]Startup failed:[/] {e}")
            return orch.registry.health_report()
        return await orch.health()

    try:
        report = asyncio.run(_run())
    finally:
        orch.close()

    if as_json:
        console.print_json(json.dumps(report.model_dump(mode="json")))
    else:
        table = Table(title=f"Service health: {report.overall_status.value}")
        table.add_column("Service")
        table.add_column("Status")
        table.add_column("Response (ms)", justify="right")
        table.add_column("Error")
        for name, entry in sorted(report.services.items()):
            table.add_row(
                name,
                entry.status.value,
                "" if entry.response_time_ms is None else f"{entry.response_time_ms:.1f}",
                entry.error or "",
            )
        console.print(table)

    if report.overall_status.value != "healthy":
        raise typer.Exit(code=1)


@app.command()
def report():
    """
    Print the system report as JSON.
    """
    orch = _orchestrator()

    async def _run():
        await orch.start()
        return await orch.engine.generate_system_report()

    try:
        data = asyncio.run(_run())
    finally:
        orch.close()
    console.print_json(json.dumps(data, default=str))


if __name__ == "__main__":
    app()
