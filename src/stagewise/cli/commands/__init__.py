"""CLI subcommands."""

from stagewise.cli.commands.run import run_cmd

__all__ = ["run_cmd"]
