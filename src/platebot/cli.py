from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .bot import Bot
from .config import ConfigError, load_settings
from .logging import get_logger, setup_logging

logger = get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Telegram bot for number-plate lookups and registration alerts.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Platebot CLI."""


async def _serve(bot: Bot) -> None:
    try:
        await bot.run()
    finally:
        with anyio.CancelScope(shield=True):
            await bot.close()


@app.command()
def run(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to platebot.toml (defaults to ./.platebot or ~/.platebot).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log debug output with a console renderer.",
    ),
) -> None:
    """Serve Telegram updates until interrupted."""
    try:
        settings = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e

    setup_logging(debug=debug or settings.debug, level=settings.log_level)
    logger.info(
        "bot.starting",
        recognizer_url=settings.recognizer_url,
        storage_url=settings.storage_url,
        poll_interval_s=settings.poll_interval_s,
    )
    bot = Bot.from_settings(settings)
    try:
        anyio.run(_serve, bot)
    except KeyboardInterrupt:
        logger.info("bot.interrupted")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
