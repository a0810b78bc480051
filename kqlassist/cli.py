"""
kqlassist CLI

Command-line interface for asking questions of Azure telemetry in plain language.

Usage:
    kqlassist ask "failed requests per hour today"        # Generate, review, execute
    kqlassist ask "..." --mode auto --max-attempts 5      # Auto-execute confident queries
    kqlassist ask "requests | take 5" --mode raw          # Run KQL as given
    kqlassist ask "..." -o out/result --format csv        # Save the result to out/result.csv
    kqlassist ask "..." --analyze full --portal-link      # Analyze the result, print a portal link
    kqlassist validate-config                             # Check datasource settings
    kqlassist check-connection                            # Authenticate and run a probe query
    kqlassist schema                                      # List backend tables and columns
"""

import asyncio
import codecs
import logging
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from kqlassist import __version__
from kqlassist.agents.analyzer import QueryAnalyzer
from kqlassist.agents.explainer import QueryExplainer
from kqlassist.agents.generator import QueryGenerator
from kqlassist.agents.regenerator import QueryRegenerator
from kqlassist.config import Settings, get_settings
from kqlassist.connectors.base import BaseTelemetryConnector
from kqlassist.connectors.factory import create_connector
from kqlassist.connectors.validation import validate_provider_config
from kqlassist.llm.factory import LLMProviderFactory
from kqlassist.models.errors import (
    AuthenticationExhausted,
    ConfigurationInvalid,
    KQLAssistError,
    RegenerationExhausted,
    ReviewRoundsExhausted,
)
from kqlassist.models.analysis import ResultAnalysis
from kqlassist.models.provider import ProviderConfiguration
from kqlassist.models.query import ReviewDecision, ReviewRequest, RouterState, TurnOutcome
from kqlassist.output import OUTPUT_FORMATS, drop_empty_columns, render_result, write_result
from kqlassist.pipeline.deadline import Deadline
from kqlassist.pipeline.orchestrator import QueryPipeline
from kqlassist.portal import build_portal_url, supports_portal_link

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def configure_cli_logging(settings: Settings, verbose: bool) -> None:
    """Only warnings reach the terminal unless --verbose."""
    settings.logging.configure(level=None if verbose else "WARNING")


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as e:
        err_console.print(f"[red]Invalid configuration:[/red]\n{escape(str(e))}")
        sys.exit(2)


def _provider_config(settings: Settings):
    try:
        return settings.datasource.to_provider_config()
    except ValidationError as e:
        err_console.print(f"[red]Invalid datasource configuration:[/red]\n{escape(str(e))}")
        sys.exit(2)


def _build_connector(settings: Settings, timeout: float | None = None) -> BaseTelemetryConnector:
    return create_connector(
        _provider_config(settings),
        auth=settings.auth,
        timeout=timeout or settings.pipeline.query_timeout_seconds,
    )


def print_error(error: KQLAssistError) -> None:
    """Render a typed error from its context."""
    lines = [f"[bold]{escape(error.message)}[/bold]"]
    if isinstance(error, ConfigurationInvalid):
        lines.extend(f"  - {escape(item)}" for item in error.errors)
        lines.append("[dim]Run 'kqlassist validate-config' for details.[/dim]")
    elif isinstance(error, AuthenticationExhausted):
        tried = ", ".join(error.attempted_strategies) or "none"
        lines.append(f"Strategies tried: {tried}")
        lines.append(
            "[dim]Set AUTH_ACCESS_TOKEN or AUTH_TENANT_ID/AUTH_CLIENT_ID/AUTH_CLIENT_SECRET, "
            "or run 'az login'.[/dim]"
        )
    elif isinstance(error, RegenerationExhausted):
        lines.append(
            f"[dim]Raise the limit with --max-attempts (currently {error.max_attempts}).[/dim]"
        )
    elif isinstance(error, ReviewRoundsExhausted):
        lines.append(
            f"[dim]Raise PIPELINE_MAX_REVIEW_ROUNDS (currently {error.rounds}) "
            "or execute or cancel sooner.[/dim]"
        )
    err_console.print(
        Panel("\n".join(lines), title=f"[red]{type(error).__name__}[/red]", border_style="red")
    )


def show_query(request: ReviewRequest) -> None:
    query = request.query
    confidence_style = "yellow" if request.low_confidence else "green"
    console.print(
        Panel(
            Syntax(query.query_text, "sql", word_wrap=True),
            title=f"Generated KQL (attempt {request.attempt}/{request.max_attempts})",
            subtitle=f"[{confidence_style}]confidence {query.confidence:.2f}[/{confidence_style}]",
            border_style="cyan",
        )
    )
    console.print(f"[dim]{escape(query.reasoning)}[/dim]")


def show_portal_link(config: ProviderConfiguration, query: str) -> None:
    try:
        url = build_portal_url(config, query)
    except ConfigurationInvalid as e:
        print_error(e)
        return
    console.print("[bold]Open in Azure Portal:[/bold]")
    console.print(url, markup=False, highlight=False, soft_wrap=True)


def make_review_handler(
    explainer: QueryExplainer,
    language: str,
    provider_config: ProviderConfiguration | None = None,
):
    """Interactive reviewer backed by rich prompts."""
    portal = provider_config is not None and supports_portal_link(provider_config)

    async def review(request: ReviewRequest) -> ReviewDecision:
        show_query(request)
        choices = ["execute", "explain", "edit", "cancel"]
        if request.can_regenerate:
            choices.insert(1, "regenerate")
        if portal:
            choices.insert(-1, "portal")

        while True:
            action = Prompt.ask("Action", choices=choices, default="execute", console=console)

            if action == "execute":
                return ReviewDecision.execute()
            if action == "cancel":
                return ReviewDecision.cancel()
            if action == "regenerate":
                feedback = Prompt.ask(
                    "What should change? (optional)", default="", console=console
                )
                return ReviewDecision.regenerate(feedback.strip() or None)
            if action == "edit":
                edited = click.edit(request.query.query_text, extension=".kql")
                if edited is None:
                    console.print("[yellow]No changes made.[/yellow]")
                    continue
                return ReviewDecision.edit(edited)
            if action == "portal":
                show_portal_link(provider_config, request.query.query_text)
                continue

            # explain
            try:
                with console.status("[cyan]Explaining query...[/cyan]", spinner="dots"):
                    explanation = await explainer.explain(request.query.query_text, language)
            except KQLAssistError as e:
                print_error(e)
                continue
            console.print(Panel(Markdown(explanation), title="[bold green]Explanation[/bold green]"))

    return review


def print_outcome(
    outcome: TurnOutcome,
    output_format: str,
    *,
    headers: bool = True,
    show_empty_columns: bool = False,
    output_path: str | None = None,
    encoding: str = "utf-8",
) -> int:
    """Render a finished turn, or write its result to a file, and return the exit code."""
    if outcome.state is RouterState.FAILED and outcome.error is not None:
        print_error(outcome.error)
        return 1
    if outcome.cancelled:
        console.print("[yellow]Cancelled.[/yellow]")
        return 0
    if outcome.state is RouterState.REVIEWING and outcome.query is not None:
        console.print("[yellow]Query needs review before it can run:[/yellow]")
        console.print(outcome.query.query_text, markup=False)
        return 0
    if outcome.result is None:
        return 0

    result = outcome.result if show_empty_columns else drop_empty_columns(outcome.result)
    if output_path is not None:
        try:
            written = write_result(
                result, output_path, output_format, headers=headers, encoding=encoding
            )
        except (OSError, UnicodeError) as e:
            err_console.print(f"[red]Could not write {escape(output_path)}: {escape(str(e))}[/red]")
            return 1
        console.print(f"[green]✓ Saved {result.total_rows} rows to {escape(str(written))}[/green]")
        return 0

    if output_format == "table" and outcome.query is not None:
        console.print(f"[dim]Executed:[/dim] {escape(outcome.query.query_text)}")
    render_result(result, output_format, console, headers=headers)
    return 0


def show_analysis(analysis: ResultAnalysis) -> None:
    """Render a result analysis as rich panels."""
    stats = analysis.statistics
    summary = Table(title="Result statistics", show_header=True, header_style="bold cyan")
    summary.add_column("Column")
    summary.add_column("Unique", justify="right")
    summary.add_column("Null %", justify="right")
    for name, unique in stats.unique_values.items():
        summary.add_row(escape(name), str(unique), f"{stats.null_percentage.get(name, 0.0):.1f}")
    console.print(summary)

    lines = [f"Rows: {stats.total_rows}"]
    if stats.numeric:
        numeric = stats.numeric
        lines.append(
            f"{escape(numeric.column)}: mean {numeric.mean}, median {numeric.median}, "
            f"std dev {numeric.std_dev}, range {numeric.minimum} to {numeric.maximum}, "
            f"{numeric.distribution} distribution, {len(numeric.outliers)} outliers"
        )
    if stats.temporal:
        temporal = stats.temporal
        lines.append(
            f"{escape(temporal.column)}: {temporal.start.isoformat()} to "
            f"{temporal.end.isoformat()}, trend {temporal.trend}"
        )
    for title, items in (
        ("Trends", analysis.trends),
        ("Anomalies", analysis.anomalies),
        ("Correlations", analysis.correlations),
        ("Recommendations", analysis.recommendations),
    ):
        if items:
            lines.append(f"\n[bold]{title}[/bold]")
            lines.extend(f"  - {escape(item)}" for item in items)
    console.print(Panel("\n".join(lines), title="[bold green]Analysis[/bold green]"))

    if analysis.insights:
        console.print(Panel(Markdown(analysis.insights), title="[bold green]Insights[/bold green]"))
    for follow_up in analysis.follow_up_queries:
        console.print(
            Panel(
                Syntax(follow_up.query, "sql", word_wrap=True),
                title=f"Follow-up ({follow_up.priority}): {escape(follow_up.purpose)}",
                border_style="cyan",
            )
        )


def _check_encoding(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        codecs.lookup(value)
    except LookupError:
        raise click.BadParameter(f"unknown encoding '{value}'") from None
    return value


# ============================================================================
# CLI Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="kqlassist")
@click.option("--verbose", "-v", is_flag=True, help="Show INFO/DEBUG logs.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """kqlassist - Natural language to KQL for Azure telemetry."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("question")
@click.option(
    "--mode",
    type=click.Choice(["auto", "review-always", "raw"]),
    default=None,
    help="auto: run confident queries directly; review-always: always review; raw: QUESTION is KQL.",
)
@click.option("--max-attempts", type=click.IntRange(min=1), default=None, help="Generation attempts per question.")
@click.option("--threshold", type=click.FloatRange(0.0, 1.0), default=None, help="Auto-execution confidence threshold.")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None, help="End-to-end deadline in seconds.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="table",
    show_default=True,
)
@click.option("--output", "-o", "output_path", default=None, help="Write the result to this file.")
@click.option("--no-headers", is_flag=True, help="Omit column headers from table, CSV and TSV output.")
@click.option(
    "--encoding",
    default="utf-8",
    show_default=True,
    callback=_check_encoding,
    help="Encoding for --output files.",
)
@click.option("--show-empty-columns", is_flag=True, help="Keep columns with no values.")
@click.option(
    "--analyze",
    "analysis_type",
    type=click.Choice(["statistical", "patterns", "full"]),
    default=None,
    help="Analyze the result: local statistics, model-found patterns, or both plus insights.",
)
@click.option("--portal-link", is_flag=True, help="Print an Azure Portal link for the executed query.")
@click.option("--language", default="en", show_default=True, help="Language for explanations and analysis.")
@click.pass_context
def ask(
    ctx: click.Context,
    question: str,
    mode: str | None,
    max_attempts: int | None,
    threshold: float | None,
    timeout: float | None,
    output_format: str,
    output_path: str | None,
    no_headers: bool,
    encoding: str,
    show_empty_columns: bool,
    analysis_type: str | None,
    portal_link: bool,
    language: str,
):
    """Ask a question, review the generated KQL, and run it."""
    settings = _load_settings()
    configure_cli_logging(settings, ctx.obj["verbose"])

    async def run_question() -> int:
        try:
            provider = LLMProviderFactory.create_default_provider(settings.llm)
        except ValueError as e:
            err_console.print(f"[red]LLM configuration error: {escape(str(e))}[/red]")
            return 2

        try:
            generator = QueryGenerator(
                provider,
                backend=settings.datasource.type,
                temperature=settings.llm.temperature,
            )
            regenerator = QueryRegenerator(
                generator, temperature=settings.llm.regeneration_temperature
            )
            explainer = QueryExplainer(provider, prompts=generator.prompts)
            provider_config = _provider_config(settings)

            try:
                connector = _build_connector(settings)
            except ConfigurationInvalid as e:
                print_error(e)
                return 2

            async with connector:
                deadline = Deadline(timeout or settings.pipeline.turn_timeout_seconds)
                schema_hint = None
                if settings.pipeline.schema_hint_enabled and (mode or settings.pipeline.mode) != "raw":
                    try:
                        with console.status("[cyan]Reading schema...[/cyan]", spinner="dots"):
                            schema = await connector.get_schema(deadline=deadline)
                        schema_hint = schema.to_prompt_hint()
                    except KQLAssistError as e:
                        logger.warning(f"Continuing without schema hint: {e.message}")

                pipeline = QueryPipeline(
                    generator,
                    regenerator,
                    connector,
                    review_handler=make_review_handler(explainer, language, provider_config),
                    mode=mode or settings.pipeline.mode,
                    confidence_threshold=(
                        threshold if threshold is not None else settings.pipeline.confidence_threshold
                    ),
                    max_attempts=max_attempts or settings.pipeline.max_attempts,
                    query_timeout=settings.pipeline.query_timeout_seconds,
                    max_review_rounds=settings.pipeline.max_review_rounds,
                )
                outcome = await pipeline.run_turn(
                    question, schema_hint=schema_hint, deadline=deadline
                )
            exit_code = print_outcome(
                outcome,
                output_format,
                headers=not no_headers,
                show_empty_columns=show_empty_columns,
                output_path=output_path,
                encoding=encoding,
            )
            if outcome.result is None or outcome.query is None:
                return exit_code

            if portal_link:
                show_portal_link(provider_config, outcome.query.query_text)
            if analysis_type is not None:
                analyzer = QueryAnalyzer(provider, prompts=generator.prompts)
                try:
                    with console.status("[cyan]Analyzing result...[/cyan]", spinner="dots"):
                        analysis = await analyzer.analyze(
                            outcome.result,
                            outcome.query.query_text,
                            question=None if (mode or settings.pipeline.mode) == "raw" else question,
                            analysis_type=analysis_type,
                            language=language,
                        )
                except KQLAssistError as e:
                    print_error(e)
                    return 1
                show_analysis(analysis)
            return exit_code
        finally:
            await provider.aclose()

    sys.exit(asyncio.run(run_question()))


@cli.command("validate-config")
@click.pass_context
def validate_config(ctx: click.Context):
    """Validate the datasource configuration without touching the network."""
    settings = _load_settings()
    configure_cli_logging(settings, ctx.obj["verbose"])
    config = _provider_config(settings)
    result = validate_provider_config(config)

    table = Table(title=f"{config.type} configuration", show_header=True, header_style="bold cyan")
    table.add_column("Level")
    table.add_column("Message")
    for error in result.errors:
        table.add_row("[red]error[/red]", escape(error))
    for warning in result.warnings:
        table.add_row("[yellow]warning[/yellow]", escape(warning))

    if result.errors or result.warnings:
        console.print(table)
    if result.is_valid:
        console.print("[green]✓ Configuration is valid[/green]")
        return
    sys.exit(1)


@cli.command("check-connection")
@click.pass_context
def check_connection(ctx: click.Context):
    """Authenticate against the backend and run a probe query."""
    settings = _load_settings()
    configure_cli_logging(settings, ctx.obj["verbose"])

    async def run_check() -> int:
        try:
            connector = _build_connector(settings)
        except ConfigurationInvalid as e:
            print_error(e)
            return 2

        async with connector:
            with console.status("[cyan]Checking connection...[/cyan]", spinner="dots"):
                check = await connector.validate_connection()
            if check.is_valid:
                console.print(
                    f"[green]✓ Connected to {settings.datasource.type} "
                    f"using {connector.current_strategy.value}[/green]"
                )
                return 0
            err_console.print(f"[red]✗ Connection failed: {escape(check.error or 'unknown error')}[/red]")
            return 1

    sys.exit(asyncio.run(run_check()))


@cli.command()
@click.option("--table", "table_name", default=None, help="Only show this table.")
@click.pass_context
def schema(ctx: click.Context, table_name: str | None):
    """List backend tables and columns."""
    settings = _load_settings()
    configure_cli_logging(settings, ctx.obj["verbose"])

    async def run_schema() -> int:
        try:
            connector = _build_connector(settings)
        except ConfigurationInvalid as e:
            print_error(e)
            return 2

        async with connector:
            try:
                with console.status("[cyan]Reading schema...[/cyan]", spinner="dots"):
                    info = await connector.get_schema()
            except KQLAssistError as e:
                print_error(e)
                return 1

        tables = [t for t in info.tables if table_name is None or t.name == table_name]
        if not tables:
            console.print("[yellow]No tables found.[/yellow]")
            return 0
        for table in tables:
            rich_table = Table(title=table.name, show_header=True, header_style="bold cyan")
            rich_table.add_column("Column")
            rich_table.add_column("Type")
            for column in table.columns:
                rich_table.add_row(column.name, column.type)
            console.print(rich_table)
        return 0

    sys.exit(asyncio.run(run_schema()))


if __name__ == "__main__":
    cli()
