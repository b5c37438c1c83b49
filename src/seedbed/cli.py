"""Root CLI group and version flag."""

import logging

import click

from seedbed import __version__
from seedbed.commands.answer import answer
from seedbed.commands.init import init
from seedbed.commands.review import review
from seedbed.commands.run import run


@click.group()
@click.version_option(version=__version__, prog_name="seedbed")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Seedbed — run CLI coding agents and stream their events."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(init)
cli.add_command(run)
cli.add_command(answer)
cli.add_command(review)
