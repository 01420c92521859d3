"""
Command line entry point.

Usage:
    ai-daily-digest serve --port 3456
    ai-daily-digest generate --hours 48 --top-n 15
    ai-daily-digest prune-translations --days 30
"""
from __future__ import annotations

import asyncio
import logging
import sys

import click

from ai_daily_digest import __version__
from ai_daily_digest.core.config import (
    DEFAULT_HOURS,
    DEFAULT_TOP_N,
    HOST,
    LOG_LEVEL,
    PORT,
    TRANSLATE_RETENTION_DAYS,
    setup_logging,
)

logger = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default=LOG_LEVEL, show_default=True, help="Root logging level")
def cli(log_level: str) -> None:
    """AI Daily Digest: RSS to scored, summarized and translated daily digests."""
    setup_logging(log_level.upper())


@cli.command()
@click.option("--host", default=HOST, show_default=True)
@click.option("--port", default=PORT, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API with the digest scheduler."""
    import uvicorn

    from ai_daily_digest.api.app import create_app

    logger.info("Starting server on %s:%d", host, port)
    uvicorn.run(create_app(), host=host, port=port, log_level=logging.getLevelName(logging.getLogger().level).lower())


@cli.command()
@click.option("--hours", default=DEFAULT_HOURS, show_default=True, type=click.IntRange(1, 24 * 30))
@click.option("--top-n", "top_n", default=DEFAULT_TOP_N, show_default=True, type=click.IntRange(1, 100))
@click.option("--no-prewarm", is_flag=True, help="Skip the background pre-translation sweep")
def generate(hours: int, top_n: int, no_prewarm: bool) -> None:
    """Generate today's digest once, using the stored API config or AI_API_KEY."""
    from ai_daily_digest.context import AppContext

    ctx = AppContext.build(prewarm_enabled=not no_prewarm)
    api_key, options = ctx.config_store.api_options()
    if not api_key:
        raise click.ClickException("No API key configured (set AI_API_KEY or save one through the API)")

    async def _run():
        digest = await ctx.orchestrator.run_digest_generation(api_key, options, hours=hours, top_n=top_n)
        await ctx.orchestrator.drain_background()
        return digest

    try:
        digest = asyncio.run(_run())
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Digest {digest['date']}: {len(digest['articles'])} articles")
    for position, article in enumerate(digest["articles"], start=1):
        click.echo(f"{position:2d}. [{article['score']:2d}] {article['titleZh'] or article['title']}")


@cli.command("prune-translations")
@click.option("--days", default=TRANSLATE_RETENTION_DAYS, show_default=True, type=click.IntRange(0))
def prune_translations(days: int) -> None:
    """Drop cached translations older than DAYS."""
    from ai_daily_digest.context import AppContext

    removed = AppContext.build().translations.prune(days)
    click.echo(f"Removed {removed} translation(s)")


@cli.command()
def version() -> None:
    """Show version information"""
    click.echo(f"ai-daily-digest v{__version__}")


def main() -> None:
    try:
        cli()
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        click.secho(f"Fatal error: {e}", fg="red", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
