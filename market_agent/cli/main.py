"""Interactive CLI for the market analysis agent using Typer and Rich."""

import asyncio
import json
import sys
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from market_agent.config.settings import settings
from market_agent.config.logging import configure_logging, get_logger
from market_agent.orchestration.orchestrator import AnalysisOrchestrator
from market_agent.orchestration.planner import HeuristicPlanProposer, LLMPlanProposer
from market_agent.orchestration.schemas import PredictionRequest, PredictionResponse
from market_agent.tools.market_tools import build_default_registry
from market_agent.utils.logging import configure_structured_logging

__version__ = "0.1.0"

# Initialize CLI app
app = typer.Typer(
    help="Market Analysis Agent CLI - plans, executes and synthesizes market predictions",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL for this invocation (logs go to stderr)"
    ),
) -> None:
    """Plan, execute and synthesize market predictions."""
    if log_level is None:
        return
    override = settings.model_copy(update={"log_level": log_level})
    try:
        configure_logging(override)
        configure_structured_logging(override)
    except (ValueError, KeyError):
        configure_logging()
        configure_structured_logging()
        raise typer.BadParameter(f"Unknown log level: {log_level}", param_hint="--log-level")


@app.command()
def status() -> None:
    """
    Display system status and configuration.

    Shows runtime limits, LLM configuration and logging settings.
    """
    logger.info("Displaying system status")

    table = Table(title="Market Agent Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", width=20)
    table.add_column("Status", style="green", width=15)
    table.add_column("Details", style="yellow")

    python_version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    table.add_row("Environment", "✓ Ready", python_version)

    api_status = "✓ Configured" if settings.gemini_api_key else "⚠ Not Configured"
    table.add_row("Gemini API", api_status, f"{settings.gemini_model} (LLM planning only)")

    timeout = f"{settings.run_timeout_seconds}s" if settings.run_timeout_seconds else "none"
    table.add_row(
        "Orchestrator",
        "✓ Ready",
        f"Max steps: {settings.max_plan_steps}, tool timeout: {settings.tool_timeout_seconds}s, "
        f"run timeout: {timeout}",
    )

    log_details = f"Level: {settings.log_level}, Format: {settings.log_format}"
    table.add_row("Logging", "✓ Active", log_details)

    console.print(table)


@app.command()
def tools() -> None:
    """List the registered market analysis tools."""
    registry = build_default_registry()

    table = Table(title="Registered Tools", show_header=True, header_style="bold magenta")
    table.add_column("Tool", style="cyan")
    table.add_column("Description", style="yellow")
    table.add_column("Parameters", style="green")

    for spec in registry:
        params = ", ".join(spec.parameter_schema.get("properties", {}).keys())
        table.add_row(spec.name, spec.description, params or "-")

    console.print(table)


def _print_prediction(response: PredictionResponse) -> None:
    prediction = response.prediction
    metadata = response.run_metadata

    title = f"{response.subject} prediction"
    if response.is_fallback:
        title += " (fallback)"

    macro = prediction.macro_trend
    micro = prediction.micro_trend
    body = (
        f"[bold]Macro ({macro.timeframe}):[/bold] {macro.direction} "
        f"@ {macro.confidence:.2f}\n  {macro.rationale}\n"
        f"[bold]Micro ({micro.timeframe}):[/bold] {micro.direction} "
        f"@ {micro.confidence:.2f}\n  {micro.expected_action}"
    )
    console.print(Panel(body, title=title, border_style="red" if response.is_fallback else "green"))

    levels = prediction.key_levels
    table = Table(title="Key Levels", show_header=True, header_style="bold magenta")
    table.add_column("Support", style="green")
    table.add_column("Resistance", style="red")
    table.add_column("Breakout", style="yellow")
    table.add_row(
        ", ".join(f"{level:.2f}" for level in levels.immediate_support) or "-",
        ", ".join(f"{level:.2f}" for level in levels.immediate_resistance) or "-",
        f"{levels.breakout_level:.2f}" if levels.breakout_level is not None else "-",
    )
    console.print(table)

    if prediction.risk_factors:
        console.print("[bold]Risk factors:[/bold]")
        for risk in prediction.risk_factors:
            console.print(f"  • {risk}")

    console.print(
        f"\n[dim]Strategy: {metadata.strategy} | Tools: {', '.join(metadata.tools_used) or '-'} | "
        f"Steps: {metadata.reasoning_steps} | Time: {metadata.total_analysis_time} | "
        f"Calibration: {metadata.confidence_calibration}[/dim]"
    )


@app.command()
def predict(
    subject: str = typer.Argument(..., help="Instrument symbol, e.g. AAPL or XAUUSD"),
    strategy: str = typer.Option("comprehensive", help="comprehensive, technical, sentiment or momentum"),
    risk: str = typer.Option("medium", help="Risk tolerance: low, medium or high"),
    macro: Optional[str] = typer.Option(None, help="Macro trend timeframe label"),
    micro: Optional[str] = typer.Option(None, help="Micro trend timeframe label"),
    llm: bool = typer.Option(False, "--llm", help="Plan with Gemini, falling back to heuristics"),
    timeout: Optional[float] = typer.Option(None, help="Run timeout in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw prediction response as JSON"),
) -> None:
    """
    Run an analysis and print the prediction for SUBJECT.

    Args:
        subject: Instrument symbol
        strategy: Planning strategy
        risk: Risk tolerance
        macro: Optional macro timeframe override
        micro: Optional micro timeframe override
        llm: Use the LLM plan proposer
        timeout: Optional run timeout
        as_json: Emit JSON instead of rich output
    """
    try:
        request = PredictionRequest.model_validate(
            {
                "symbol": subject,
                "preferences": {
                    "strategy": strategy,
                    "riskTolerance": risk,
                    "timePreference": {"macro": macro, "micro": micro},
                },
            }
        )
    except ValidationError as e:
        console.print(f"[red]✗[/red] Invalid request: {e.error_count()} errors")
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            console.print(f"  [yellow]{location}[/yellow]: {error['msg']}")
        raise typer.Exit(2)

    logger.info("Predict command invoked", subject=request.subject, strategy=strategy, llm=llm)

    proposer = (
        LLMPlanProposer(fallback=HeuristicPlanProposer()) if llm else HeuristicPlanProposer()
    )
    orchestrator = AnalysisOrchestrator(build_default_registry(), plan_proposer=proposer)

    if not as_json:
        console.print(f"[dim]Analyzing {request.subject}...[/dim]")

    response = asyncio.run(
        orchestrator.run(request.subject, request.preferences, timeout=timeout)
    )

    if as_json:
        typer.echo(json.dumps(response.model_dump(by_alias=True, mode="json"), indent=2))
    else:
        _print_prediction(response)


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Market Analysis Agent[/bold]")
    console.print(f"Version: {__version__}")


if __name__ == "__main__":
    app()
