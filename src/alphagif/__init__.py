"""alphagif package entrypoint."""

from alphagif.cli.app import main as _cli_main


def main() -> None:
    """Run the alphagif CLI."""
    _cli_main()
