"""CLI entry point for the mail command interpreter."""

import logging
from dataclasses import dataclass

import click
from dotenv import load_dotenv

from src.agent.config import ProcessorConfig, build_processor
from src.agent.processor import CommandProcessor
from src.storage.db import EmailDatabase

logger = logging.getLogger(__name__)


@dataclass
class CliSession:
    """What every subcommand receives via ``@click.pass_obj``."""

    config: ProcessorConfig
    db: EmailDatabase
    processor: CommandProcessor

    def close(self) -> None:
        self.db.close()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log INFO messages to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Natural-language mail commands: run, send, and connect."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    config = ProcessorConfig.from_env()
    db = EmailDatabase(db_path=config.db_path)
    ctx.obj = CliSession(config, db, build_processor(config, db))
    ctx.call_on_close(ctx.obj.close)


# Import and register commands after cli is defined to avoid circular imports.
from src.cli.commands import connect, run, send  # noqa: E402

cli.add_command(run)
cli.add_command(send)
cli.add_command(connect)
