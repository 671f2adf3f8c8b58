"""Dogpile Sync CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from dogpile_sync import __version__
from dogpile_sync.cli.sync import shelters_app, sync_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="dogpile-sync",
    help="Dogpile Sync - keeps adoptable-dog listings in step with shelter websites",
    add_completion=False,
)
app.add_typer(sync_app, name="sync")
app.add_typer(shelters_app, name="shelters")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    level = logging.DEBUG if verbose else getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _check_ai_config() -> None:
    """Check and display AI configuration status."""
    openrouter_key = os.environ.get("OPENROUTER_API_KEY", "")
    anthropic_key = os.environ.get("ANTHROPIC_API_KEY", "")
    openai_key = os.environ.get("OPENAI_API_KEY", "")
    provider = os.environ.get("AI_PROVIDER")

    if provider:
        typer.echo(f"  AI Provider: {provider} (from AI_PROVIDER)")
    elif openrouter_key:
        typer.echo("  AI Provider: OpenRouter (configured)")
    elif anthropic_key:
        typer.echo("  AI Provider: Anthropic (configured)")
    elif openai_key:
        typer.echo("  AI Provider: OpenAI (configured)")
    else:
        typer.echo("  AI Provider: Not configured (new dogs are stored without enrichment)")
        typer.echo("  Tip: Set OPENROUTER_API_KEY in .env file to enable AI enrichment")


@app.command()
def init_db(
    migrate: bool = typer.Option(False, "--migrate", "-m", help="Run Alembic migrations instead of create_all"),
) -> None:
    """Initialize the database (create tables)."""
    from dogpile_sync.db.engine import init_db as db_init
    from dogpile_sync.db.engine import run_migrations

    typer.echo("Initializing database...")
    if migrate:
        run_migrations()
    else:
        db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def setup_search() -> None:
    """Create and configure the Meilisearch dogs index."""
    from dogpile_sync.services.meilisearch_service import get_meilisearch_service

    service = get_meilisearch_service()
    if not service.is_available():
        typer.echo(f"Error: Meilisearch not reachable at {service.url}", err=True)
        raise typer.Exit(1)

    service.setup_indexes()
    typer.echo("Search index configured.")


@app.command()
def version() -> None:
    """Show the Dogpile Sync version."""
    typer.echo(f"Dogpile Sync v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    typer.echo("Dogpile Sync Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    # Check AI config
    _check_ai_config()

    # Check database
    from dogpile_sync.db.engine import get_database_url

    typer.echo(f"  Database: {get_database_url()}")

    # Check Redis and search
    typer.echo(f"  Redis: {os.environ.get('REDIS_HOST', 'localhost')}:{os.environ.get('REDIS_PORT', '6379')}")
    typer.echo(f"  Meilisearch: {os.environ.get('MEILISEARCH_URL', 'http://localhost:7700')}")

    from dogpile_sync.sync.config import SyncSettings

    settings = SyncSettings.from_env()
    typer.echo(f"  AI concurrency: {settings.ai_concurrency}")
    typer.echo(f"  Stale listing window: {settings.stale_listing_hours}h")


if __name__ == "__main__":
    app()
