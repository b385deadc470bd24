"""
Site Cloner - CLI Entry Point.
Production-grade CLI using Click and Rich.
"""

import asyncio
import sys
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from site_cloner import __version__
from site_cloner.config.settings import get_settings
from site_cloner.extractors.site_scraper import SiteScraper, validate_scraped_data
from site_cloner.models.schemas import GenerationContext
from site_cloner.pipeline.orchestrator import GenerationPipeline, run_generation_pipeline
from site_cloner.services.generation_store import (
    JsonFileGenerationStore,
    get_generation_progress,
)
from site_cloner.services.llm_service import create_completion_client
from site_cloner.services.validation_service import ValidationService
from site_cloner.utils.logger import setup_logging
from site_cloner.utils.retry import AppError, ErrorHandler

# Initialize Rich Console
console = Console()

DEFAULT_SHOP_ID = "local"

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def configure_logging(verbose: bool) -> None:
    """Console logging; quiet unless verbose."""
    setup_logging(level="DEBUG" if verbose else "WARNING", json_format=False)


def _data_dir(data_dir: Optional[str]) -> Path:
    return Path(data_dir) if data_dir else get_settings().data_dir


def _exit_with_error(label: str, error: BaseException) -> None:
    """Print a formatted error and exit non-zero."""
    response = ErrorHandler.format_error_response(error)
    console.print(f"[bold red]{label}:[/bold red] {response['error']} [dim]({response['code']})[/dim]")
    sys.exit(1)

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
def cli():
    """Site Cloner: turn a website into Shopify theme settings and products."""
    pass

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('url')
@click.option('--shop', default=DEFAULT_SHOP_ID, help='Shop id the generation belongs to')
@click.option('--shop-domain', default=None, help='Target *.myshopify.com domain')
@click.option('--data-dir', default=None, help='Directory for generation records')
@click.option('--verbose', is_flag=True, help='Detailed logging')
@async_command
async def generate(
    url: str,
    shop: str,
    shop_domain: Optional[str],
    data_dir: Optional[str],
    verbose: bool,
):
    """
    Run a full generation for a source website.

    URL: The page to clone (e.g., https://example.com)
    """
    configure_logging(verbose)

    console.print(Panel.fit(f"[bold blue]Site Cloner Generation[/bold blue]\nSource: [cyan]{url}[/cyan]"))

    start_time = asyncio.get_running_loop().time()

    try:
        settings = get_settings()
        validator = ValidationService()
        request = validator.validate_generate_request({"url": url})
        source_url = str(request.url)
        domain = validator.validate_shop_domain(shop_domain) if shop_domain else shop

        store = JsonFileGenerationStore(_data_dir(data_dir))
        client = create_completion_client(settings)
        generation = await store.create_generation(shop, source_url)

        async with client, SiteScraper(settings) as scraper:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console
            ) as progress:
                task = progress.add_task("[cyan]Running pipeline...", total=None)

                def update_progress(pct: int, status: str) -> None:
                    progress.update(task, description=f"[cyan]{status} ({pct}%)")

                pipeline = GenerationPipeline(
                    store,
                    client,
                    scraper,
                    settings=settings,
                    progress_callback=update_progress,
                )
                result = await run_generation_pipeline(
                    GenerationContext(
                        generation_id=generation.id,
                        shop_id=shop,
                        shop_domain=domain,
                        access_token="",
                        source_url=source_url,
                    ),
                    pipeline,
                )

                progress.update(task, completed=True, description="[green]Pipeline finished")

    except AppError as e:
        _exit_with_error("Error", e)

    duration = asyncio.get_running_loop().time() - start_time

    table = Table(title="Generation Summary", show_header=False)
    table.add_row("Generation ID", generation.id)
    table.add_row("Status", "[green]Completed[/green]" if result.success else "[red]Failed[/red]")
    if result.success:
        table.add_row("Products", str(result.products_created))
    else:
        table.add_row("Error", result.error or "")
    table.add_row("Duration", f"{duration:.2f}s")
    table.add_row("Record", str(store.directory / f"{generation.id}.json"))
    console.print(table)

    if not result.success:
        sys.exit(1)
    console.print("[green]✓[/green] Content ready for review.")


@cli.command()
@click.argument('generation_id')
@click.option('--data-dir', default=None, help='Directory for generation records')
@async_command
async def status(generation_id: str, data_dir: Optional[str]):
    """
    Show progress of a generation.
    Outputs JSON to stdout.
    """
    try:
        store = JsonFileGenerationStore(_data_dir(data_dir))
        progress = await get_generation_progress(store, generation_id)
    except AppError as e:
        _exit_with_error("Status Failed", e)

    console.print_json(progress.to_json())


@cli.command()
@click.argument('url')
@async_command
async def scrape(url: str):
    """
    Run the scrape step only.
    Outputs ScrapedData JSON and the sufficiency verdict.
    """
    configure_logging(False)

    try:
        settings = get_settings()
        async with SiteScraper(settings) as scraper:
            console.print(f"[dim]Scraping {url}...[/dim]", style="italic")
            data = await scraper.scrape(url)
    except AppError as e:
        _exit_with_error("Scrape Failed", e)

    console.print_json(data.to_json())

    if validate_scraped_data(data, settings.min_body_text_chars):
        console.print("[green]✓ Sufficient content for generation[/green]")
    else:
        console.print("[yellow]✗ Insufficient content for generation[/yellow]")


@cli.command()
def validate_setup():
    """Check API keys and environment configuration."""
    console.print("[bold]Validating Setup...[/bold]")

    try:
        settings = get_settings()
    except Exception as e:
        _exit_with_error("Configuration Error", e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")

    has_key = settings.has_completion_credentials()
    if has_key:
        key = settings.anthropic_api_key.get_secret_value()
        table.add_row("Anthropic API Key", "[green]Pass[/green]", f"configured ({len(key)} chars)")
    else:
        table.add_row("Anthropic API Key", "[red]Fail[/red]", "ANTHROPIC_API_KEY not set")

    table.add_row("Model", "[blue]Info[/blue]", settings.claude_model)
    table.add_row(
        "Retry Policy",
        "[blue]Info[/blue]",
        f"{settings.retry_max_attempts} attempts, {settings.completion_timeout_seconds:g}s deadline",
    )
    table.add_row("Data Dir", "[green]Pass[/green]", str(settings.data_dir))
    table.add_row("Environment", "[blue]Info[/blue]", settings.app_env)

    console.print(table)

    if not has_key:
        sys.exit(1)


if __name__ == "__main__":
    cli()
