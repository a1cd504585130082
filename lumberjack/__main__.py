"""Entry point module for running Lumberjack via `python -m lumberjack`."""

import sys

from lumberjack.app import run


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
