"""
Structured logging helpers.
"""

import contextlib
import logging
import time
from collections.abc import Generator
from typing import Any


class StructuredLogger:
    def __init__(self, name: str, component: str | None = None):
        self.logger = logging.getLogger(name)
        self.component = component
        self.name = name

    def _prepare_extra_and_standard_kwargs(
        self, kwargs: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        standard_logging_kwargs = {"exc_info": None, "stack_info": False, "stacklevel": 1}

        extracted_kwargs: dict[str, Any] = {}
        extra_kwargs: dict[str, Any] = {}

        for key, value in kwargs.items():
            if key in standard_logging_kwargs:
                extracted_kwargs[key] = value
            else:
                extra_kwargs[key] = value

        if self.component:
            extra_kwargs["component"] = self.component

        return extracted_kwargs, extra_kwargs

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        self.logger.info(msg, *args, extra=extra_kwargs, **extracted_kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        self.logger.error(msg, *args, extra=extra_kwargs, **extracted_kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        self.logger.warning(msg, *args, extra=extra_kwargs, **extracted_kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        self.logger.debug(msg, *args, extra=extra_kwargs, **extracted_kwargs)

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        self.logger.log(level, msg, *args, extra=extra_kwargs, **extracted_kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        extracted_kwargs, extra_kwargs = self._prepare_extra_and_standard_kwargs(kwargs)
        extracted_kwargs["exc_info"] = True
        self.logger.error(msg, *args, extra=extra_kwargs, **extracted_kwargs)


def get_logger(name: str, component: str | None = None) -> StructuredLogger:
    return StructuredLogger(name, component=component)


@contextlib.contextmanager
def log_operation(
    operation: str, logger: StructuredLogger | None = None, **context: Any
) -> Generator[dict[str, Any], None, None]:
    """Log the start and the end of ``operation`` with its duration.

    The yielded dict collects result fields (probe counts, overall outcome)
    that are attached to the completion record. An exception is logged as a
    failed operation and re-raised.
    """
    if logger is None:
        logger = get_logger("preflight_validator.operation")

    start_context = {"operation": operation}
    start_context.update(context)
    logger.info(f"Started {operation}", **start_context)

    results: dict[str, Any] = {}
    start_time = time.monotonic()
    try:
        yield results
    except BaseException as exc:
        logger.warning(
            f"Failed {operation}",
            **start_context,
            **results,
            error_type=type(exc).__name__,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        raise
    logger.info(
        f"Completed {operation}",
        **start_context,
        **results,
        duration_ms=round((time.monotonic() - start_time) * 1000, 2),
    )
