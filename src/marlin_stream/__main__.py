"""Allow ``python -m marlin_stream``."""

from marlin_stream.cli import main

main()
