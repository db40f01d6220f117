"""
HelmLogger - Structured logging for Helm components.
"""

import logging
import os
import time
import traceback
from pathlib import Path
from typing import Any, Optional
from logging.handlers import RotatingFileHandler

from .formatters import JsonLinesFormatter, ConsoleFormatter
from .context import set_request_id

# Cache of loggers by module.component
_loggers: dict[str, "HelmLogger"] = {}

_log_dir: Optional[Path] = None


def _get_log_dir() -> Path:
    """Get or create log directory (HELM_LOG_DIR, else <project>/logs)."""
    global _log_dir
    if _log_dir is None:
        override = os.environ.get("HELM_LOG_DIR")
        if override:
            _log_dir = Path(override)
        else:
            current = Path(__file__).resolve()
            for parent in current.parents:
                if (parent / "shared").exists():
                    _log_dir = parent / "logs"
                    break
            else:
                _log_dir = Path("logs")

        _log_dir.mkdir(parents=True, exist_ok=True)
    return _log_dir


def get_logger(module: str, component: str, console: bool = True) -> "HelmLogger":
    """
    Get or create a HelmLogger for a module/component.

    Args:
        module: Module name (helm, llm)
        component: Component within module (store, scout, client, ...)
        console: Whether to also output to console

    Returns:
        HelmLogger instance
    """
    key = f"{module}.{component}"
    if key not in _loggers:
        _loggers[key] = HelmLogger(module, component, console)
    return _loggers[key]


class HelmLogger:
    """
    Structured logger for Helm components.

    Outputs JSON Lines to file and optionally human-readable to console.
    """

    def __init__(self, module: str, component: str, console: bool = True):
        self.module = module
        self.component = component
        self._logger = logging.getLogger(f"helm.{module}.{component}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        self._logger.handlers.clear()

        log_file = _get_log_dir() / f"{module}.jsonl"
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,  # 50MB
            backupCount=10,
            encoding='utf-8',
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLinesFormatter())
        self._logger.addHandler(file_handler)

        if console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(ConsoleFormatter())
            self._logger.addHandler(console_handler)

    def event(
        self,
        event_type: str,
        level: str = "INFO",
        **data: Any,
    ) -> None:
        """
        Log a structured event.

        Args:
            event_type: Event type identifier (e.g., "helm.store.node_deleted")
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            **data: Event-specific data fields
        """
        log_level = getattr(logging, level.upper(), logging.INFO)

        event_data = {
            "event_type": event_type,
            "helm_module": self.module,
            "component": self.component,
            **data,
        }

        self._logger.log(
            log_level,
            event_type,
            extra={
                "event_type": event_type,
                "helm_module": self.module,
                "component": self.component,
                "event_data": event_data,
            },
        )

    def debug(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="DEBUG", **data)

    def info(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="INFO", **data)

    def warning(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="WARNING", **data)

    def error(self, event_type: str, **data: Any) -> None:
        self.event(event_type, level="ERROR", **data)

    def exception(
        self,
        error: Exception,
        event_type: str = "error",
        context: Optional[dict] = None,
    ) -> None:
        """
        Log an exception with full stack trace.

        Args:
            error: The exception to log
            event_type: Event type (default: "error")
            context: Additional context about what was happening
        """
        self.event(
            event_type,
            level="ERROR",
            error_class=type(error).__name__,
            error_message=str(error),
            stack_trace=traceback.format_exc(),
            context=context or {},
        )

    # Model call helpers

    def request_start(
        self,
        request_id: str,
        model: str,
        prompt: str,
        **kwargs: Any,
    ) -> float:
        """
        Log a model request and return its start time.
        """
        set_request_id(request_id)
        self.event(
            f"{self.module}.request.start",
            level="DEBUG",
            request_id=request_id,
            model=model,
            prompt=prompt,
            prompt_length=len(prompt),
            **kwargs,
        )
        return time.time()

    def request_complete(
        self,
        request_id: str,
        model: str,
        response: str,
        start_time: float,
        **kwargs: Any,
    ) -> None:
        duration_ms = (time.time() - start_time) * 1000
        self.event(
            f"{self.module}.request.complete",
            level="DEBUG",
            request_id=request_id,
            model=model,
            response=response,
            response_length=len(response) if response else 0,
            duration_ms=round(duration_ms, 2),
            **kwargs,
        )

    def request_error(
        self,
        request_id: str,
        model: str,
        error: str,
        error_type: str,
        start_time: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        """
        Log a failed model request.

        Args:
            request_id: Unique request identifier
            model: Model name the request targeted
            error: Error message
            error_type: Error category (http_error, timeout, connection, empty)
            start_time: Optional start time for duration
        """
        event_data = {
            "request_id": request_id,
            "model": model,
            "error": error,
            "error_type": error_type,
            **kwargs,
        }
        if start_time:
            event_data["duration_ms"] = round((time.time() - start_time) * 1000, 2)

        self.event(f"{self.module}.request.error", level="WARNING", **event_data)
