"""Error reporting sink for failures caught at the job-engine boundary.

The engine never lets backend, timeout, or cancellation errors escape
``run()``/``cancel()``. It converts them into a terminal state and hands
the exception to an ``ErrorSink`` passed in explicitly by the caller.
"""

import contextlib
from typing import Any, Protocol

from loguru import logger


class ErrorSink(Protocol):
    """Protocol for fire-and-forget exception reporting."""

    def notify(self, exc: BaseException, context: dict[str, Any]) -> None:
        """Report an exception with structured context.

        Implementations must never raise.

        Args:
            exc: The exception being reported.
            context: Identifiers describing where it happened.
        """
        ...


class LoguruErrorSink:
    """Error sink that writes the exception and its traceback to the log."""

    def notify(self, exc: BaseException, context: dict[str, Any]) -> None:
        with contextlib.suppress(Exception):
            logger.bind(json_output=True, **context).opt(exception=exc).error(
                f"Geocoding error reported: {type(exc).__name__}: {exc}"
            )
