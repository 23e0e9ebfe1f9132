"""Command-line interface for prefixcrawl."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import structlog
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from prefixcrawl import __version__
from prefixcrawl.config.config import Config, find_config_file
from prefixcrawl.crawler.explorer import ExplorationReport, PrefixExplorer
from prefixcrawl.crawler.http_client import AutocompleteClient
from prefixcrawl.exceptions import ConfigurationError, SnapshotError
from prefixcrawl.observability import configure_logging, start_metrics_server

console = Console(stderr=True)
logger = structlog.get_logger(__name__)


def load_config(config_path: Optional[Path]) -> Config:
    """Load configuration from ``config_path``, a discovered config.yaml, or defaults."""
    path = config_path or find_config_file()
    try:
        if path is not None:
            return Config.from_yaml(path)
        return Config()
    except (ValidationError, FileNotFoundError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid configuration{f' in {path}' if path else ''}: {e}") from e


def render_report(report: ExplorationReport) -> Table:
    table = Table(title="Extraction Complete")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Total requests", str(report.total_requests))
    table.add_row("Total names", str(report.total_names))
    table.add_row("Prefixes explored", str(report.prefixes_explored))
    table.add_row("Rate-limited retries", str(report.rate_limited_retries))
    table.add_row("Transient retries", str(report.transient_retries))
    table.add_row("Abandoned prefixes", str(len(report.abandoned)))
    table.add_row("Time elapsed", f"{report.elapsed_seconds:.2f}s")
    return table


async def explore(config: Config) -> ExplorationReport:
    async with AutocompleteClient(config.endpoint) as client:
        explorer = PrefixExplorer(config, client)
        return await explorer.run()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Configuration file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (overrides the configuration file)",
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], log_level: Optional[str]) -> None:
    """prefixcrawl - discover every entry behind a paginated autocomplete endpoint."""
    ctx.ensure_object(dict)
    try:
        loaded = load_config(Path(config) if config else None)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(2)
    if log_level:
        loaded.monitoring.log_level = log_level
    ctx.obj["config"] = loaded


@cli.command()
@click.option("--endpoint", help="Autocomplete endpoint URL")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Snapshot file")
@click.option("--names-output", type=click.Path(dir_okay=False, path_type=Path), help="Names-only output file")
@click.option(
    "--dead-letter-output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="File listing abandoned prefixes",
)
@click.option("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
@click.pass_context
def run(
    ctx: click.Context,
    endpoint: Optional[str],
    output: Optional[Path],
    names_output: Optional[Path],
    dead_letter_output: Optional[Path],
    metrics_port: Optional[int],
) -> None:
    """Explore the endpoint until every truncated prefix has been expanded."""
    config: Config = ctx.obj["config"]
    if endpoint:
        config.endpoint.url = endpoint
    if output:
        config.snapshot.path = output
    if names_output:
        config.snapshot.names_only_path = names_output
    if dead_letter_output:
        config.snapshot.dead_letter_path = dead_letter_output
    if metrics_port is not None:
        config.monitoring.prometheus_port = metrics_port

    configure_logging(config.monitoring)
    if config.monitoring.prometheus_port:
        start_metrics_server(config.monitoring.prometheus_port)

    console.print(
        Panel.fit(
            f"[bold blue]prefixcrawl[/bold blue]\n"
            f"Endpoint: {config.endpoint.url}\n"
            f"Alphabet: {len(config.exploration.alphabet)} characters, page cap {config.exploration.page_cap}\n"
            f"Rate limit: {config.rate_limiter.max_requests} per {config.rate_limiter.per_seconds:g}s\n"
            f"Concurrency: {config.concurrency.initial} in "
            f"[{config.concurrency.minimum}, {config.concurrency.maximum}]",
            title="Starting Extraction",
        )
    )

    try:
        report = asyncio.run(explore(config))
    except SnapshotError as e:
        console.print(f"[red]Extraction failed: {e}[/red]")
        sys.exit(1)

    console.print(render_report(report))
    console.print(f"Saved results to {config.snapshot.path}")
    if report.abandoned:
        message = f"{len(report.abandoned)} prefixes were abandoned; their subtrees are missing."
        if config.snapshot.dead_letter_path is not None:
            message += f" See {config.snapshot.dead_letter_path}."
        console.print(f"[yellow]{message}[/yellow]")
        sys.exit(3)


@cli.command("show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    config: Config = ctx.obj["config"]
    click.echo(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
