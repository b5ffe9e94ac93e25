"""
Companion — main entry point.

Usage:
    python -m companion.main serve
    companion serve
    companion chat --user alice
"""

from __future__ import annotations


def main() -> None:
    """Main entry point — starts the companion via CLI."""
    from companion.cli.commands import cli

    cli()


if __name__ == "__main__":
    main()
