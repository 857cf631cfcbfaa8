"""Root click group for the ``stagewise`` command."""

from typing import Optional

import click

from stagewise import __version__
from stagewise.cli.commands import run_cmd


@click.group("stagewise")
@click.version_option(__version__, prog_name="stagewise")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="TOML config file (overrides STAGEWISE_CONFIG_FILE and the default lookup).",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """Staged deep research from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


cli.add_command(run_cmd)


if __name__ == "__main__":
    cli()
