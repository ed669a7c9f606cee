# ABOUTME: Main CLI application entry point using asyncclick for native async support
# ABOUTME: Provides commands to run the quote pipeline and manage monitored sources

import json
from pathlib import Path
from typing import Any

import asyncclick as click
from rich.console import Console
from rich.panel import Panel

from echograph.config import Config, get_config
from echograph.core.models import RunRequest
from echograph.errors import ConfigError, SourceLoadError
from echograph.persistence import DatabaseManager
from echograph.utils.logging import LoggingMode, configure_logging, get_logging_status, with_run_context
from echograph.utils.rich_tables import (
    create_logging_status_table,
    create_quotes_table,
    create_run_summary_table,
    create_source_stats_table,
    create_sources_table,
    print_rich_table,
)

console = Console()


def build_run_request(
    config: Config, sources: tuple[str, ...], request_file: Path | None, overrides: dict[str, Any]
) -> RunRequest:
    """Combine settings defaults, an optional trigger file and CLI flags into a run request.

    CLI flags win over the trigger file, which wins over settings.

    Raises:
        ConfigError: If the trigger file or the combined configuration is invalid
    """
    payload_sources: list[str] = []
    payload_config: dict[str, Any] = {}
    if request_file is not None:
        try:
            payload = json.loads(Path(request_file).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read run request from {request_file}: {e}") from e
        parsed = RunRequest.from_payload(payload)
        payload_sources = parsed.sources
        payload_config = parsed.config.model_dump(exclude_unset=True)

    # Omitted flags arrive as None and must not mask the trigger file
    flags = {key: value for key, value in overrides.items() if value is not None}
    run_config = config.default_run_config(**{**payload_config, **flags})
    return RunRequest(sources=list(sources) or payload_sources, config=run_config)


def _display_run_results(result) -> None:
    snapshot = result.snapshot
    print_rich_table(console, create_run_summary_table(snapshot, str(result.snapshot_path or "") or None))
    if snapshot.source_stats:
        print_rich_table(console, create_source_stats_table(snapshot.source_stats))
    if snapshot.quotes:
        print_rich_table(console, create_quotes_table(snapshot.quotes))


@click.command()
@click.option("--source", "-s", "sources", multiple=True, help="Source URL to crawl (repeatable)")
@click.option(
    "--request",
    "request_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON trigger payload with sources and camelCase config",
)
@click.option("--threshold", type=float, help="Cosine similarity at which quotes are duplicates")
@click.option("--max-concurrent", type=int, help="Maximum in-flight external calls")
@click.option("--max-retries", type=int, help="Retries for rate-limited and transient failures")
@click.option("--run-id", help="Identifier for this run (generated if omitted)")
@click.option(
    "--output-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory for the run snapshot"
)
@click.pass_context
async def run(
    ctx,
    sources: tuple[str, ...],
    request_file: Path | None,
    threshold: float | None,
    max_concurrent: int | None,
    max_retries: int | None,
    run_id: str | None,
    output_dir: Path | None,
):
    """
    📰 Crawl sources, extract and deduplicate quotes, and store them.

    Without --source or a request file, all active monitored sources are crawled.
    """
    json_output = ctx.obj["json_output"]
    config = get_config()
    overrides = {
        "similarity_threshold": threshold,
        "max_concurrent": max_concurrent,
        "max_retries": max_retries,
        "run_id": run_id,
    }

    try:
        request = build_run_request(config, sources, request_file, overrides)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    await _run_async(request, config, output_dir, json_output)


async def _run_async(request: RunRequest, config: Config, output_dir: Path | None, json_output: bool) -> None:
    from echograph.core.pipeline import QuotePipelineService

    with with_run_context(request.config.run_id) as logger:
        if not json_output:
            console.print(
                Panel.fit(
                    f"📰 [bold cyan]echograph[/bold cyan]\nRun: {request.config.run_id}",
                    border_style="magenta",
                )
            )

        service = QuotePipelineService(config=config, output_dir=output_dir)
        try:
            if json_output:
                result = await service.run(request)
            else:
                with console.status("[bold cyan]Running quote pipeline...[/bold cyan]"):
                    result = await service.run(request)
        except SourceLoadError as e:
            logger.error("Run failed", error=str(e))
            raise click.ClickException(str(e)) from e
        finally:
            await service.close()

        if json_output:
            click.echo(
                json.dumps(
                    {
                        "run_id": result.snapshot.run_id,
                        "snapshot_path": str(result.snapshot_path) if result.snapshot_path else None,
                        "stats": result.snapshot.stats.model_dump(),
                    },
                    indent=2,
                )
            )
        else:
            _display_run_results(result)


@click.command(name="add-source")
@click.argument("url")
@click.pass_context
async def add_source(ctx, url: str):
    """Add a URL to the monitored sources."""
    if not url.startswith(("http://", "https://")):
        raise click.BadParameter("URL must start with http:// or https://", param_hint="URL")

    db = DatabaseManager(get_config().database_url)
    try:
        await db.create_tables()
        source = await db.add_source(url)
    finally:
        await db.close()

    if ctx.obj["json_output"]:
        click.echo(json.dumps({"id": source.id, "url": source.url, "active": source.active}))
    else:
        console.print(f"[green]✅ Monitoring {source.url}[/green]")


@click.command(name="list-sources")
@click.pass_context
async def list_sources(ctx):
    """List monitored sources."""
    db = DatabaseManager(get_config().database_url)
    try:
        await db.create_tables()
        sources = await db.all_sources()
    finally:
        await db.close()

    if ctx.obj["json_output"]:
        click.echo(json.dumps([json.loads(source.model_dump_json()) for source in sources], indent=2))
        return

    if not sources:
        console.print("[yellow]No monitored sources yet. Add one with 'echograph add-source URL'.[/yellow]")
        return
    print_rich_table(console, create_sources_table(sources))


@click.command(name="remove-source")
@click.argument("url")
@click.pass_context
async def remove_source(ctx, url: str):
    """Stop monitoring a URL. Its crawl history and stored quotes are kept."""
    db = DatabaseManager(get_config().database_url)
    try:
        await db.create_tables()
        removed = await db.deactivate_source(url)
    finally:
        await db.close()

    if not removed:
        raise click.ClickException(f"{url} is not a monitored source")

    if ctx.obj["json_output"]:
        click.echo(json.dumps({"url": url, "active": False}))
    else:
        console.print(f"[yellow]⏸️  Stopped monitoring {url}[/yellow]")


@click.command(name="list-quotes")
@click.option("--run-id", help="Only show quotes staged by this run")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum number of quotes to show")
@click.pass_context
async def list_quotes(ctx, run_id: str | None, limit: int):
    """
    💬 Show quotes staged for review.
    """
    db = DatabaseManager(get_config().database_url)
    try:
        await db.create_tables()
        rows = await db.list_staged_quotes(run_id, limit=limit)
    finally:
        await db.close()

    if ctx.obj["json_output"]:
        click.echo(json.dumps([json.loads(row.model_dump_json()) for row in rows], indent=2))
        return

    if not rows:
        console.print("[yellow]No staged quotes found.[/yellow]")
        return
    print_rich_table(console, create_quotes_table([row.to_unique_quote() for row in rows], limit=limit))


@click.command(name="logging-status")
def logging_status():
    """
    📊 Show current logging configuration and status.
    """
    status = get_logging_status()
    logging_table = create_logging_status_table(status)
    print_rich_table(console, logging_table)


def _initialize_logging(json_output: bool, log_level: str | None = None, log_file: str | None = None) -> None:
    """Initialize logging configuration."""
    mode = LoggingMode.PRODUCTION if json_output else LoggingMode.INTERACTIVE
    try:
        config = get_config()

        # Use config defaults when CLI parameters are not provided
        final_log_level = log_level or config.log_level
        final_log_file = log_file or (str(config.log_file) if config.log_file else None)

        configure_logging(mode=mode, log_level=final_log_level, log_file=final_log_file)
    except (FileNotFoundError, PermissionError, OSError):
        # Fall back to minimal logging configuration
        configure_logging(mode=LoggingMode.PRODUCTION, log_level=log_level or "INFO")


@click.group(invoke_without_command=True)
@click.option("--json", is_flag=True, help="Output structured JSON instead of rich interface")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--log-file", help="Custom log file path")
@click.pass_context
def app(ctx, json: bool, log_level: str | None, log_file: str | None):
    """
    📰 echograph - quote extraction pipeline for news sources

    Crawls monitored news pages, extracts attributed quotes with a language
    model, deduplicates them semantically and stages them for review.
    """
    # Store global options in context for commands to access
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json

    # Initialize logging once here instead of in each command
    _initialize_logging(json, log_level, log_file)

    # Show help if no command provided
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Add commands to the main group
app.add_command(run)
app.add_command(add_source)
app.add_command(remove_source)
app.add_command(list_sources)
app.add_command(list_quotes)
app.add_command(logging_status)

if __name__ == "__main__":
    app()
