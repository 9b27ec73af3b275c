"""
Helpers for logging forwarding failures together with their cause chain.
"""

import logging
from typing import List


def _safe_str(obj) -> str:
    """
    Convert an object to string, falling back to repr and then to its type name.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _cause_chain(exception: BaseException) -> List[BaseException]:
    """Explicit causes of an exception, outermost first, without cycles."""
    chain = []
    seen = {id(exception)}
    current = exception.__cause__
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__
    return chain


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception message, including its causes.

    Args:
        exception: The exception to format

    Returns:
        "Type: message" of the exception followed by "caused by" entries
    """
    if exception is None:
        return "None"
    parts = [f"{type(exception).__name__}: {_safe_str(exception)}"]
    for cause in _cause_chain(exception):
        parts.append(f"caused by {type(cause).__name__}: {_safe_str(cause)}")
    return " <- ".join(parts)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its cause chain. Never raises.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        message = f"{prefix} {format_exception_message(exception)}"
        # Tracebacks only for unexpected failures
        logger.log(level, message, exc_info=level >= logging.ERROR and exception)
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
