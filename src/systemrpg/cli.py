"""Command-line interface for SystemRPG.

This module provides the CLI commands for running and managing
the SystemRPG auth backend.
"""

import asyncio
import json
import sys
from typing import NoReturn

import click

from systemrpg import __version__
from systemrpg.core.config import get_settings
from systemrpg.core.logging import configure_logging, get_logger


@click.group()
@click.version_option(version=__version__, prog_name="SystemRPG")
def cli() -> None:
    """SystemRPG - authentication core for the RPG group management backend.

    Settings are read from SYSTEMRPG_* environment variables and .env.
    """


@cli.command()
@click.option("--host", type=str, default=None, help="Host to bind to (overrides config)")
@click.option("--port", type=int, default=None, help="Port to bind to (overrides config)")
@click.option(
    "--workers", type=int, default=None, help="Number of worker processes (overrides config)"
)
@click.option(
    "--reload", is_flag=True, default=False, help="Enable auto-reload for development"
)
def serve(host: str | None, port: int | None, workers: int | None, reload: bool) -> None:
    """Start the SystemRPG server."""
    import uvicorn

    settings = get_settings()

    bind_host = host or settings.host
    bind_port = port or settings.port
    bind_workers = workers or settings.workers

    configure_logging(settings)

    logger = get_logger(__name__)
    logger.info(
        "Starting SystemRPG server",
        host=bind_host,
        port=bind_port,
        workers=bind_workers,
        reload=reload,
        environment=settings.environment,
    )

    uvicorn.run(
        "systemrpg.infrastructure.api.app:app",
        host=bind_host,
        port=bind_port,
        workers=1 if reload else bind_workers,
        reload=reload,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


@cli.command("init-db")
@click.option("--force", is_flag=True, help="Allow running in production mode")
def init_db(force: bool) -> None:
    """Create the database tables. Use migrations in production."""
    from systemrpg.infrastructure.persistence import models  # noqa: F401
    from systemrpg.infrastructure.persistence.database import DatabaseManager

    settings = get_settings()
    configure_logging(settings)

    if settings.is_production and not force:
        click.echo(
            "ERROR: Running in production mode. Use migrations instead of init-db.",
            err=True,
        )
        raise SystemExit(1)

    async def initialize():
        db = DatabaseManager(settings)
        try:
            await db.create_tables()
            click.echo("Database initialized successfully.")
        finally:
            await db.disconnect()

    asyncio.run(initialize())


@cli.command("issue-token")
@click.option("--username", "-u", required=True, help="Token subject (username)")
@click.option("--user-id", required=True, help="Opaque user identifier")
@click.option(
    "--role",
    "roles",
    multiple=True,
    default=("USER",),
    show_default=True,
    help="Role name without prefix; repeat for several roles",
)
def issue_token(username: str, user_id: str, roles: tuple[str, ...]) -> None:
    """Issue an access/refresh token pair (development helper).

    Refuses to sign under RS256 unless a key pair is configured.
    """
    from datetime import timedelta

    from systemrpg.infrastructure.auth.signing_keys import load_signing_keys
    from systemrpg.infrastructure.auth.token_codec import TokenCodec
    from systemrpg.infrastructure.auth.token_types import TokenType

    settings = get_settings()
    configure_logging(settings)

    if settings.jwt_algorithm == "RS256" and not settings.has_rsa_keys:
        click.echo(
            "ERROR: no RSA key pair configured. Set SYSTEMRPG_JWT_RSA_PRIVATE_KEY and "
            "SYSTEMRPG_JWT_RSA_PUBLIC_KEY (see generate-keys) so the server can verify "
            "the issued tokens.",
            err=True,
        )
        raise SystemExit(1)

    codec = TokenCodec(load_signing_keys(settings))
    try:
        access_token = codec.issue(
            username,
            user_id,
            TokenType.ACCESS,
            roles,
            timedelta(seconds=settings.access_token_expire_seconds),
        )
        refresh_token = codec.issue(
            username,
            user_id,
            TokenType.REFRESH,
            roles,
            timedelta(seconds=settings.refresh_token_expire_seconds),
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    click.echo(
        json.dumps(
            {
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_type": "Bearer",
                "expires_in": settings.access_token_expire_seconds,
                "refresh_expires_in": settings.refresh_token_expire_seconds,
            },
            indent=2,
        )
    )


@cli.command("prune-blacklist")
def prune_blacklist() -> None:
    """Delete blacklist entries whose tokens have expired."""
    from systemrpg.infrastructure.auth.blacklist_store import BlacklistStore
    from systemrpg.infrastructure.persistence.database import DatabaseManager

    settings = get_settings()
    configure_logging(settings)

    async def prune() -> int:
        db = DatabaseManager(settings)
        try:
            return await BlacklistStore(db.session_factory, settings=settings).prune_expired()
        finally:
            await db.disconnect()

    deleted = asyncio.run(prune())
    click.echo(f"Removed {deleted} expired blacklist entries.")


@cli.command("generate-keys")
def generate_keys() -> None:
    """Generate an RSA key pair for RS256 signing.

    Prints the keys as environment assignments in the base64 DER form
    expected by the settings.
    """
    from systemrpg.infrastructure.auth.signing_keys import (
        encode_key_pair,
        generate_rsa_private_key,
    )

    private_b64, public_b64 = encode_key_pair(generate_rsa_private_key())
    click.echo(f"SYSTEMRPG_JWT_RSA_PRIVATE_KEY={private_b64}")
    click.echo(f"SYSTEMRPG_JWT_RSA_PUBLIC_KEY={public_b64}")


@cli.command()
def info() -> None:
    """Display SystemRPG configuration."""
    settings = get_settings()
    key_source = "configured" if settings.has_rsa_keys else "ephemeral"
    if settings.blacklist_prune_enabled:
        prune_schedule = f"every {settings.blacklist_prune_interval_seconds} seconds"
    else:
        prune_schedule = "disabled"

    click.echo(f"""
SystemRPG v{settings.app_version}
{'=' * 40}

Configuration:
  Environment:  {settings.environment}
  Debug:        {settings.debug}
  Context Path: {settings.context_path}
  Locale:       {settings.default_locale}

Server:
  Host:         {settings.host}
  Port:         {settings.port}
  Workers:      {settings.workers}

Database:
  URL:          {settings.database_url}
  Pool Size:    {settings.db_pool_size}

Tokens:
  Algorithm:    {settings.jwt_algorithm}
  Key ID:       {settings.jwt_key_id}
  RSA Keys:     {key_source}
  Access TTL:   {settings.access_token_expire_seconds} seconds
  Refresh TTL:  {settings.refresh_token_expire_seconds} seconds

Blacklist:
  Prune:        {prune_schedule}
  Lookup:       {settings.blacklist_lookup_timeout_seconds}s timeout, {settings.blacklist_max_retries} retries

Logging:
  Level:        {settings.log_level}
  Format:       {settings.log_format}
""")


def main() -> NoReturn:
    """Main entry point for the CLI.

    This function is called when the `systemrpg` command is run
    or when using `python -m systemrpg`.
    """
    cli()


def serve_main() -> NoReturn:
    """Entry point that defaults to the serve command."""
    sys.argv[0] = "systemrpg"
    if len(sys.argv) == 1:
        sys.argv.append("serve")
    main()


if __name__ == "__main__":
    main()
