"""
Utility functions for exception logging that never raise themselves.

Upstream failures are per-request and must not break the request that is
being declined, so formatting or logging problems are contained here.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    """Safely get the exceptions list from an exception group."""
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """
    Format an exception message, including sub-exceptions of exception groups.

    Args:
        exception: The exception to format

    Returns:
        A formatted string describing the exception
    """
    if exception is None:
        return "None"

    name = type(exception).__name__
    message = _safe_str(exception)
    base = f"{name}: {message}" if message else name

    sub_exceptions = _safe_get_exceptions(exception)
    if not sub_exceptions:
        return base

    parts = [f"{type(sub).__name__}: {_safe_str(sub)}" for sub in sub_exceptions]
    return f"{base} (Sub-exceptions: {'; '.join(parts)})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, one entry per sub-exception for groups.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Fetch]", "[Assets]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        sub_exceptions = (
            _safe_get_exceptions(exception) if exception is not None else []
        )
        if not sub_exceptions:
            logger.log(
                level,
                f"{prefix} Exception: {format_exception_message(exception)}",
                exc_info=exception if exception is not None else False,
            )
            return

        logger.log(
            level,
            f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
            f"{_safe_str(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{prefix} Sub-exception {i+1}: {format_exception_message(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        # Logging must never turn a declined request into a failed one
        try:
            logger.log(logging.ERROR, f"{prefix} Exception logging failed")
        except Exception:
            pass
