"""Loguru sink setup for command-line entry points.

Library modules only call ``logger``; sinks are configured once here by
whichever program embeds lance-context.
"""

import sys

from loguru import logger


def configure_logging(verbose: bool = False) -> None:
    """Replace loguru's default sink with a stderr sink.

    Args:
        verbose: Emit DEBUG records; otherwise only WARNING and above
    """
    logger.remove()
    if verbose:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> - <level>{message}</level>",
        )
    else:
        logger.add(sys.stderr, level="WARNING", format="<level>{message}</level>")
