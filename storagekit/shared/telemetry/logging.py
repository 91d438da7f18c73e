"""Logging configuration for applications embedding storagekit."""

import logging
import sys


def setup_logging(debug: bool = False) -> None:
    """Configure process-wide logging.

    storagekit loggers log at DEBUG when debug is True, otherwise INFO.
    botocore never goes below INFO; its DEBUG output includes request
    signing details. Output goes to stdout.
    """
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("storagekit").setLevel(log_level)
    logging.getLogger("botocore").setLevel(max(log_level, logging.INFO))
