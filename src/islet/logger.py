"""Logging helpers.

Every module logs through a standard-library logger namespaced under
``islet.``; the library never installs handlers itself.
"""

from __future__ import annotations

import logging


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given name, prefixed with ``islet.``.

    >>> get_logger("mymodule").name
    'islet.mymodule'
    """
    if not (name == "islet" or name.startswith("islet.")):
        name = f"islet.{name}"
    return logging.getLogger(name)
