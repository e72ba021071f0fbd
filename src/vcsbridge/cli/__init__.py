"""Command line entry points for vcsbridge."""

from typer import Typer

from ..configuration.cli import config_app
from ..github.webhook.cli import github_app


cli = Typer(help="vcsbridge command line tools")
cli.add_typer(config_app, name="config")
cli.add_typer(github_app, name="github")


def main() -> None:
    cli()


__all__ = ["cli", "config_app", "github_app", "main"]
