from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure the ``swarmcoord`` logger to write to stderr.

    stdout is left alone: the CLI prints command results there.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger("swarmcoord")
    root.setLevel(numeric_level)
    # Repeated calls (one per CLI invocation in tests) must not stack handlers
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("filelock").setLevel(logging.WARNING)
    logging.getLogger("mcp").setLevel(logging.WARNING)
