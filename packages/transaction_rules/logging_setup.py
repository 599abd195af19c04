"""Logging for ``transaction_rules``.

The package logs under one tree, ``transaction_rules.*``. Importing the
package attaches a ``NullHandler`` to the top of that tree and nothing else,
so rule failures stay silent inside a host application until it decides where
they go. The CLI routes them to stderr through :func:`configure_logging`.

Rule-level messages are ``event:key=value`` shaped (``rule:malformed id=r3
reason=...``) so a run over many rules can be grepped by event.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "transaction_rules"
LOG_LEVEL_ENV = "TRANSACTION_RULES_LOG_LEVEL"

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


class _RulesHandler(logging.StreamHandler):
    """Stream handler owned by :func:`configure_logging`.

    Tagged by type so a second call replaces it instead of stacking another.
    """


def resolve_level(level: int | str | None) -> int:
    """Turn ``level`` (or ``$TRANSACTION_RULES_LOG_LEVEL``) into a number.

    Accepts ``logging`` constants, names in any case and numeric strings.
    Anything unrecognised means ``INFO``.
    """

    if level is None:
        level = os.getenv(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    text = level.strip()
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text.upper(), logging.INFO)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Send ``transaction_rules`` records to ``stream`` (stderr by default).

    Calling it again swaps the handler, so a later ``--log-level`` wins over
    an earlier default. Records stop propagating to the root logger while the
    handler is installed; :func:`reset_logging` undoes both.
    """

    resolved = resolve_level(level)
    pkg = logging.getLogger(PACKAGE_LOGGER)
    _drop_handlers(pkg)

    handler = _RulesHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or _FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False
    return handler


def reset_logging() -> None:
    """Remove the handler installed by :func:`configure_logging`."""

    pkg = logging.getLogger(PACKAGE_LOGGER)
    _drop_handlers(pkg)
    pkg.setLevel(logging.NOTSET)
    pkg.propagate = True


def _drop_handlers(pkg: logging.Logger) -> None:
    for h in [h for h in pkg.handlers if isinstance(h, _RulesHandler)]:
        pkg.removeHandler(h)
        h.close()


def get_logger(name: str) -> logging.Logger:
    """Logger for a module of this package.

    ``"engine"`` and ``"transaction_rules.engine"`` name the same logger.
    """

    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


__all__ = [
    "LOG_LEVEL_ENV",
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "resolve_level",
]
