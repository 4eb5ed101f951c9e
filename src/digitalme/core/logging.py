from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(verbosity: int = 0) -> None:
    """Install a rich console handler on the root logger.

    ``verbosity`` is the ``-v`` count from the CLI: 0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    level = _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbosity > 1)],
        force=True,
    )
