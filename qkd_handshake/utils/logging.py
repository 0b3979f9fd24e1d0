"""Logging utilities.

Every module obtains its logger through ``get_logger`` so that all handshake
output shares one namespace, one format and one level switch.
"""

import logging

LOGGER_NAMESPACE = "qkd"
LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"

_LOGGERS: dict = {}


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger for the given module.

    Parameters
    ----------
    name : str
        Module name (typically __name__).

    Returns
    -------
    logging.Logger
        Logger named ``qkd.<name>`` with a single stream handler.

    Examples
    --------
    >>> logger = get_logger(__name__)
    >>> logger.info("Starting reconciliation")
    """
    if name not in _LOGGERS:
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
            logger.propagate = False
        _LOGGERS[name] = logger
    return _LOGGERS[name]


def set_log_level(level: str) -> None:
    """Set the logging level for all handshake loggers.

    Parameters
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown names
        fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(LOGGER_NAMESPACE).setLevel(numeric_level)
    for logger in _LOGGERS.values():
        logger.setLevel(numeric_level)


def get_protocol_logger(role: str) -> logging.Logger:
    """Get a logger for one side of the handshake.

    Parameters
    ----------
    role : str
        Role name ("alice" or "bob").

    Returns
    -------
    logging.Logger
        Logger configured for protocol-level messages.

    Examples
    --------
    >>> logger = get_protocol_logger("alice")
    >>> logger.info("Qubits prepared")
    """
    return get_logger(f"protocol.{role}")
