"""Entry point for `python -m doist`."""

from doist.cli import main

main()
