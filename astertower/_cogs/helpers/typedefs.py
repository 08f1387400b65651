"""
Rudimentary type [re-]definitions for mypy and the runtime.

Some stdlib types are generics for mypy but not subscriptable at runtime,
e.g. ``logging.LoggerAdapter``. They are defined here once and reused.
"""
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# As publicly exposed: we only promise that it is based on one of the built-in loggable classes.
Logger = logging.Logger | LoggerAdapter
