"""Command-line interface for VerseFeed.

This module provides a Typer-based CLI for running and inspecting the
VerseFeed API.

Commands:
- init: Create the database schema
- serve: Run the HTTP API with uvicorn
- status: Show configuration and database statistics
- add-user: Seed an identity record (development)
- token: Mint a bearer token for a user (development)

Example:
    $ versefeed init
    $ versefeed add-user --name Ada --email ada@example.com
    $ versefeed token 1
    $ versefeed serve --reload
"""

from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from versefeed.config import settings
from versefeed.database import DatabaseManager
from versefeed.identity import TokenIdentityResolver
from versefeed.logging import setup_logging as configure_logging

# Initialize CLI app
app     = typer.Typer(
    name="versefeed",
    help="Poetry feed API: poems, profiles, visitor counter and Razorpay checkout",
    add_completion=False,
)
console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, set DEBUG level; otherwise the configured level
    """
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_logs=settings.log_json,
        colorize=not settings.log_json,
    )


def _remove_database_files(db_path: Path) -> None:
    for suffix in ("", "-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)


# =============================================================================
# CLI Commands
# =============================================================================


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force re-initialization (recreate database)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Initialize the database schema.

    Examples:
        # Initialize database
        $ versefeed init

        # Drop and recreate the database
        $ versefeed init --force
    """
    setup_logging(verbose)

    console.print("🏗️  [bold cyan]VerseFeed Initialization[/bold cyan]\n")

    try:
        db_path = Path(str(settings.database_path))
        if db_path.exists():
            if not force:
                console.print(
                    f"⚠️  Database already exists at {settings.database_path}\n"
                    "Use --force to recreate it."
                )
                return
            _remove_database_files(db_path)
            console.print(f"🗑️  Removed existing database at [yellow]{db_path}[/yellow]")

        db = DatabaseManager()
        db.initialize()
        db.close()

        console.print(f"✅ Database created at [yellow]{settings.database_path}[/yellow]")
        console.print(f"📂 Uploads: [yellow]{settings.upload_dir}[/yellow]")

        if not settings.has_payment_credentials:
            console.print(
                "\n⚠️  RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not set: "
                "payment endpoints will answer with a configuration error."
            )

        console.print("\n✅ [bold green]Initialization complete![/bold green]")
        console.print("\nNext steps:")
        console.print("  1. Run: versefeed add-user --name <name> --email <email>")
        console.print("  2. Run: versefeed token <user id>")
        console.print("  3. Run: versefeed serve")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"\n❌ [bold red]Initialization failed: {e}[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API.

    Examples:
        $ versefeed serve
        $ versefeed serve --host 0.0.0.0 --port 9000
    """
    bind_host = host or settings.host
    bind_port = port or settings.port

    console.print(
        f"🚀 [bold cyan]VerseFeed API[/bold cyan] on "
        f"[yellow]http://{bind_host}:{bind_port}[/yellow]"
    )
    uvicorn.run(
        "versefeed.server:app",
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def status(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Show configuration and database statistics.

    Examples:
        $ versefeed status
    """
    setup_logging(verbose)

    console.print("📊 [bold cyan]VerseFeed Status[/bold cyan]\n")

    try:
        db = DatabaseManager()
        db.initialize()

        # Configuration
        config_table = Table(title="Configuration", show_header=False)
        config_table.add_column("Key", style="cyan")
        config_table.add_column("Value", style="yellow")

        config_table.add_row("Environment", str(settings.environment))
        config_table.add_row("Database Path", str(settings.database_path))
        config_table.add_row("Upload Directory", str(settings.upload_dir))
        config_table.add_row("Razorpay API", settings.razorpay_api_base)
        config_table.add_row("Razorpay Key", settings.redact_token())
        config_table.add_row(
            "Payments", "configured" if settings.has_payment_credentials else "not configured"
        )

        console.print(config_table)
        console.print()

        # Database statistics
        stats = db.get_statistics()

        stats_table = Table(title="Database Statistics")
        stats_table.add_column("Entity", style="cyan")
        stats_table.add_column("Count", justify="right", style="green")

        stats_table.add_row("Users", f"{stats['users']:,}")
        stats_table.add_row("Profiles", f"{stats['profiles']:,}")
        stats_table.add_row("Poems", f"{stats['poems']:,}")
        stats_table.add_row("Public Poems", f"{stats['public_poems']:,}")
        stats_table.add_row("Stored Files", f"{stats['files']:,}")

        console.print(stats_table)
        console.print()

        console.print(f"👀 Visitors: [yellow]{stats['visitors']:,}[/yellow]")

        db.close()

    except Exception as e:
        console.print(f"\n❌ [bold red]Status failed: {e}[/bold red]")
        raise typer.Exit(code=1)


@app.command("add-user")
def add_user(
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Email address"),
) -> None:
    """Create an identity record for local development.

    Examples:
        $ versefeed add-user --name Ada --email ada@example.com
    """
    if not name and not email:
        console.print("❌ [bold red]Provide --name, --email, or both[/bold red]")
        raise typer.Exit(code=1)

    db = DatabaseManager()
    try:
        db.initialize()
        user = db.create_user(name=name, email=email)
    except Exception as e:
        console.print(f"\n❌ [bold red]Could not create user: {e}[/bold red]")
        raise typer.Exit(code=1)
    finally:
        db.close()

    console.print(f"✅ Created user [bold]{user.id}[/bold] ({name or email})")


@app.command()
def token(
    user_id: int = typer.Argument(..., help="User id to put in the token subject"),
    ttl_minutes: Optional[int] = typer.Option(
        None,
        "--ttl-minutes",
        help="Token lifetime (defaults to AUTH_TOKEN_TTL_MINUTES)",
    ),
) -> None:
    """Print a bearer token for a user (development only).

    Examples:
        $ curl -H "Authorization: Bearer $(versefeed token 1)" localhost:8000/api/me
    """
    ttl = timedelta(minutes=ttl_minutes) if ttl_minutes else None
    # Plain echo: the token must stay on one line for shell substitution
    typer.echo(TokenIdentityResolver().issue(user_id, ttl=ttl))


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
