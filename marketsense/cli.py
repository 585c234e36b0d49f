"""Command line interface for running and inspecting market analyses."""

from __future__ import annotations

import asyncio
import logging

import typer

from marketsense import AnalysisSession, StageInvocationError, get_backend, get_store, load_config
from marketsense.contracts import Step, StepStatus
from marketsense.errors import MarketSenseError, RequirementNotFoundError
from marketsense.flow import RequirementFlowService, stage_description, status_message
from marketsense.loader import RequirementDataLoader
from marketsense.tracker import ProgressTracker

app = typer.Typer(help="CLI for marketsense analyses")

# Command groups
analysis_app = typer.Typer(help="Commands for running market analyses")
progress_app = typer.Typer(help="Commands for inspecting local progress")
flow_app = typer.Typer(help="Commands for the requirement flow")

app.add_typer(analysis_app, name="analysis")
app.add_typer(progress_app, name="progress")
app.add_typer(flow_app, name="flow")

_STATUS_COLORS = {
    StepStatus.PENDING: None,
    StepStatus.PROCESSING: typer.colors.YELLOW,
    StepStatus.COMPLETED: typer.colors.GREEN,
    StepStatus.FAILED: typer.colors.RED,
}


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for marketsense"),
) -> None:
    """marketsense CLI entry point."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_steps(steps: list[Step], current_step_index: int) -> None:
    for index, step in enumerate(steps):
        marker = ">" if index == current_step_index else " "
        counter = (
            f" ({step.current}/{step.total})"
            if step.current is not None and step.total is not None
            else ""
        )
        typer.secho(
            f"{marker} {index + 1}. {step.name}: {step.status.value}{counter}",
            fg=_STATUS_COLORS[step.status],
        )


def _session(requirement_id: str) -> AnalysisSession:
    config = load_config()
    return AnalysisSession(
        requirement_id,
        store=get_store(),
        backend=get_backend(config),
        settings=config.pipeline,
    )


@analysis_app.command("run")
def analysis_run(requirement_id: str) -> None:
    """
    Run the five-stage market analysis for a requirement.

    Loads the requirement and its analysis, resets local progress and drives
    query generation, search, scraping, summarization and the final analysis.

    Example:
        marketsense analysis run 6f1c2f0e-requirement
    """
    session = _session(requirement_id)

    async def _run() -> None:
        try:
            await session.refresh()
            await session.start_analysis()
        finally:
            _echo_steps(session.tracker.steps, session.tracker.current_step_index)
            await session.backend.close()

    try:
        asyncio.run(_run())
    except RequirementNotFoundError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except StageInvocationError as e:
        typer.secho(f"Failed to complete market analysis: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except MarketSenseError as e:
        typer.secho(f"Could not load market analysis: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo("Market analysis completed")


@analysis_app.command("watch")
def analysis_watch(requirement_id: str) -> None:
    """
    Wait for an in-progress analysis to finish.

    Restores the persisted progress, reconciles it with the remote record and
    polls until the analysis settles.
    """
    session = _session(requirement_id)

    async def _watch() -> bool:
        active = await session.restore()
        if active:
            typer.echo(f"Waiting for analysis of {requirement_id}...")
            await session.watch()
        return active

    try:
        active = asyncio.run(_watch())
    except MarketSenseError as e:
        typer.secho(f"Could not watch market analysis: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not active:
        typer.echo("No analysis in progress")
        return
    _echo_steps(session.tracker.steps, session.tracker.current_step_index)


@analysis_app.command("list")
def analysis_list() -> None:
    """List market analyses with their requirement and status."""
    loader = RequirementDataLoader(get_backend())
    try:
        analyses = asyncio.run(loader.fetch_all_market_analyses())
    except MarketSenseError as e:
        typer.secho(f"Could not list market analyses: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not analyses:
        typer.echo("No market analyses found")
        return
    for row in analyses:
        requirement = row["requirements"]
        name = requirement.get("project_name") or requirement["id"]
        typer.echo(f"{row['requirement_id']}\t{name}\t{row.get('status') or 'Draft'}")


@progress_app.command("show")
def progress_show(requirement_id: str) -> None:
    """Show locally persisted progress for a requirement."""
    tracker = ProgressTracker(requirement_id, get_store())
    if not asyncio.run(tracker.restore_if_present()):
        typer.echo("No progress recorded")
        return
    state = "in progress" if tracker.in_progress else "idle"
    typer.echo(f"Analysis {requirement_id}: {state}")
    _echo_steps(tracker.steps, tracker.current_step_index)


@progress_app.command("reset")
def progress_reset(requirement_id: str) -> None:
    """Clear all persisted progress for a requirement."""
    tracker = ProgressTracker(requirement_id, get_store())
    asyncio.run(tracker.reset_progress())
    typer.echo(f"Progress cleared for {requirement_id}")


@flow_app.command("status")
def flow_status(requirement_id: str) -> None:
    """Show where a requirement is in the product flow."""
    service = RequirementFlowService(get_backend())
    status = asyncio.run(service.get_status(requirement_id))
    if status is None:
        typer.echo("Flow status not found")
        raise typer.Exit(code=1)
    typer.echo(f"{stage_description(status.current_stage)}: {status_message(status)}")


@flow_app.command("complete")
def flow_complete(requirement_id: str, stage: str) -> None:
    """Mark a flow stage complete for a requirement."""
    service = RequirementFlowService(get_backend())
    try:
        done = asyncio.run(service.complete_stage(requirement_id, stage))
    except ValueError:
        typer.secho(f"Unknown stage: {stage}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not done:
        typer.secho(f"Failed to complete {stage}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{stage_description(stage)} marked complete")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
