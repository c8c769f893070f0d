"""Tyro CLI application entrypoint."""

from __future__ import annotations

from typing import Annotated

import tyro

from alphagif.cli import commands_convert, commands_probe


TopLevelCommand = Annotated[
    commands_convert.ConvertCommand,
    tyro.conf.subcommand(name="convert"),
] | Annotated[
    commands_probe.ProbeCommand,
    tyro.conf.subcommand(name="probe"),
]


def dispatch(command: TopLevelCommand) -> None:
    """Dispatch parsed top-level command object."""

    if isinstance(command, commands_convert.ConvertCommand):
        commands_convert.execute(command)
        return
    if isinstance(command, commands_probe.ProbeCommand):
        commands_probe.execute(command)
        return
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run requested command."""

    command = tyro.cli(TopLevelCommand, args=argv)
    dispatch(command)
