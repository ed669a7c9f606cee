# ABOUTME: Rich table utilities for styled CLI output of runs, sources and logging status
# ABOUTME: Provides pre-configured table generators for common data display patterns

from typing import Any

from rich.box import ROUNDED, SIMPLE
from rich.console import Console
from rich.table import Table

from echograph.core.models import RunSnapshot, SourceStats, UniqueQuote


def create_key_value_table(
    title: str,
    data: dict[str, str],
    title_style: str = "bold cyan",
    key_style: str = "bold blue",
    value_style: str = "green",
    box_style=ROUNDED,
) -> Table:
    """Create a two-column key-value table.

    Args:
        title: Table title with emoji/styling
        data: Dictionary of key-value pairs to display
        title_style: Style for the table title
        key_style: Style for the key column
        value_style: Style for the value column
        box_style: Border style for the table

    Returns:
        Formatted Rich table ready for printing
    """
    table = Table(
        title=f"[{title_style}]{title}[/{title_style}]",
        box=box_style,
        show_header=True,
        header_style="bold magenta",
        border_style="cyan",
        title_justify="left",
        expand=False,
    )

    table.add_column("Field", style=key_style, width=None, no_wrap=False)
    table.add_column("Value", style=value_style, width=None, no_wrap=False)

    for key, value in data.items():
        table.add_row(key, str(value))

    return table


def create_multi_column_table(
    title: str,
    columns: list[tuple[str, str]],
    rows: list[list[str]],
    title_style: str = "bold cyan",
    header_style: str = "bold magenta",
    alternate_row_styles: list[str] | None = None,
    box_style=ROUNDED,
) -> Table:
    """Create a multi-column table.

    Args:
        title: Table title with emoji/styling
        columns: List of (column_name, column_style) tuples
        rows: List of row data
        title_style: Style for the table title
        header_style: Style for column headers
        alternate_row_styles: Alternating row styles for zebra striping
        box_style: Border style for the table

    Returns:
        Formatted Rich table ready for printing
    """
    table = Table(
        title=f"[{title_style}]{title}[/{title_style}]",
        box=box_style,
        show_header=True,
        header_style=header_style,
        border_style="cyan",
        title_justify="left",
        row_styles=alternate_row_styles or ["", "dim"],
        expand=True,
    )

    for name, style in columns:
        table.add_column(name, style=style)

    for row in rows:
        table.add_row(*row)

    return table


def create_run_summary_table(snapshot: RunSnapshot, snapshot_path: str | None = None) -> Table:
    """Create a run summary table from a run snapshot."""
    stats = snapshot.stats
    lost = f"[bold red]{stats.quotes_lost}[/bold red]" if stats.quotes_lost else "0"

    summary_data = {
        "🆔 Run": snapshot.run_id,
        "🌐 Sources": str(stats.sources),
        "📰 Headlines": f"{stats.headlines} ({stats.headlines_selected} new)",
        "📄 Articles": str(stats.articles),
        "💬 Quotes Extracted": str(stats.quotes_extracted),
        "✅ Valid / ❌ Invalid": f"{stats.quotes_valid} / {stats.quotes_invalid}",
        "🧬 Unique Quotes": str(stats.unique_quotes),
        "💾 Stored": str(stats.quotes_stored),
        "🚨 Lost": lost,
        "📁 Snapshot": snapshot_path or "[dim]not written[/dim]",
    }

    if stats.limiter:
        summary_data["🚦 External Calls"] = (
            f"{stats.limiter.get('succeeded', 0)} ok, {stats.limiter.get('failed', 0)} failed, "
            f"peak {stats.limiter.get('peak_in_flight', 0)} in flight"
        )

    return create_key_value_table(
        title="🔄 Run Summary",
        data=summary_data,
        title_style="bold green",
        key_style="cyan",
        value_style="white",
        box_style=SIMPLE,
    )


def create_source_stats_table(source_stats: list[SourceStats]) -> Table:
    rows = [[stats.parent_url, str(stats.headlines), str(stats.articles), str(stats.quotes)] for stats in source_stats]
    return create_multi_column_table(
        title="🌐 Per-Source Yield",
        columns=[("Source", "cyan"), ("Headlines", "white"), ("Articles", "green"), ("Quotes", "yellow")],
        rows=rows,
    )


def create_quotes_table(quotes: list[UniqueQuote], limit: int = 20) -> Table:
    """Create a table of the highest quality quotes."""

    def _truncate(text: str, length: int) -> str:
        return text[:length] + "..." if len(text) > length else text

    best = sorted(quotes, key=lambda quote: quote.quality_score, reverse=True)[:limit]
    rows = [
        [
            quote.speaker,
            _truncate(quote.quote_raw, 120),
            f"{quote.quality_score:.2f}",
            quote.article_metadata.article_date.isoformat(),
        ]
        for quote in best
    ]
    return create_multi_column_table(
        title=f"💬 Top Quotes ({len(best)} of {len(quotes)})",
        columns=[("Speaker", "bold blue"), ("Quote", "white"), ("Quality", "green"), ("Date", "dim white")],
        rows=rows,
    )


def create_sources_table(sources: list[Any]) -> Table:
    """Create a table of monitored URLs.

    Args:
        sources: MonitoredUrl rows
    """
    rows = []
    for source in sources:
        active = "[bold green]✅[/bold green]" if source.active else "[dim]inactive[/dim]"
        crawled = source.last_crawled_at.strftime("%Y-%m-%d %H:%M:%S") if source.last_crawled_at else "Never"
        rows.append([str(source.id or "-"), source.url, active, crawled])

    return create_multi_column_table(
        title="📡 Monitored Sources",
        columns=[("ID", "cyan"), ("URL", "white"), ("Active", "green"), ("Last Crawled", "yellow")],
        rows=rows,
    )


def create_logging_status_table(status: dict[str, Any]) -> Table:
    """Create a logging configuration status table.

    Args:
        status: Logging status dictionary

    Returns:
        Styled logging configuration table
    """
    logging_data = {
        "🔧 Mode": status["mode"].title(),
        "📁 Log Directory": status["log_directory"] or "N/A (production mode)",
        "🔇 Suppressed Libraries": ", ".join(status["third_party_suppressed"]),
    }

    if status["log_files"]["main"]:
        logging_data["📝 Main Log"] = status["log_files"]["main"]
    if status["log_files"]["json"]:
        logging_data["📊 JSON Log"] = status["log_files"]["json"]
    if status["log_files"]["errors"]:
        logging_data["🚨 Error Log"] = status["log_files"]["errors"]

    return create_key_value_table(
        title="🔍 Logging Configuration",
        data=logging_data,
        title_style="bold green",
        key_style="blue",
        value_style="white",
    )


def print_rich_table(console: Console, table: Table) -> None:
    """Print a rich table with consistent spacing and style.

    Args:
        console: Rich console instance
        table: Configured table to print
    """
    console.print()  # Add spacing before
    console.print(table)
    console.print()  # Add spacing after
