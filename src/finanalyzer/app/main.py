"""Console entry point."""
from __future__ import annotations

from finanalyzer.cli.commands import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
