"""
Logging manager for SupportSpark.

All modules obtain their logger through `get_logger()`. Each component passes a
bracketed prefix (e.g. `[SessionManager]`) so log lines can be filtered by
component without a separate logger hierarchy per module.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

ROOT_LOGGER_NAME = "support_spark"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str = ""):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def configure_logging(level: Optional[int] = None) -> None:
    """
    Attach a stream handler to the root application logger.

    Safe to call more than once; only the first call installs the handler.
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if level is not None:
        root.setLevel(level)
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    if level is None:
        root.setLevel(logging.INFO)
    _configured = True


def get_logger(name: str = ROOT_LOGGER_NAME, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a logger for the given name, optionally prefixing every message.

    Args:
        name: Logger name. Names outside the application namespace are nested under it.
        prefix: Text prepended to each message, e.g. `"[Relationships]"`.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return PrefixedLoggerAdapter(logging.getLogger(name), prefix)
