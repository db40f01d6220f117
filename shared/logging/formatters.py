"""
Formatters for Helm structured logging.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .context import get_agent_id, get_correlation_id, get_request_id, get_tree_id


class JsonLinesFormatter(logging.Formatter):
    """
    Formats log records as JSON Lines (one JSON object per line).

    Each log entry includes:
    - timestamp: ISO 8601 with microseconds in UTC
    - level: Log level (DEBUG, INFO, WARNING, ERROR)
    - event_type: Dotted event identifier
    - module / component: Origin of the event
    - correlation_id: Agent run or request tracing ID
    - tree_id, agent_id, request_id: when set in the current context
    - Additional event-specific fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "event_type": getattr(record, 'event_type', 'log'),
            "module": getattr(record, 'helm_module', record.module),
            "component": getattr(record, 'component', record.funcName),
            "correlation_id": get_correlation_id(),
        }

        for key, value in (
            ("tree_id", get_tree_id()),
            ("agent_id", get_agent_id()),
            ("request_id", get_request_id()),
        ):
            if value:
                log_entry[key] = value

        if hasattr(record, 'event_data'):
            log_entry.update(record.event_data)

        if record.getMessage() and record.getMessage() != log_entry.get("event_type"):
            log_entry["message"] = record.getMessage()

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=self._json_serializer)

    def _json_serializer(self, obj: Any) -> Any:
        """Handle non-serializable objects."""
        if isinstance(obj, datetime):
            return obj.isoformat()
        if hasattr(obj, 'value'):
            return obj.value
        if hasattr(obj, '__dict__'):
            return str(obj)
        return repr(obj)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Format: timestamp [LEVEL] [module.component] event_type key=value ...
    """

    # Fields too long to be useful on a terminal line
    SKIP_FIELDS = {"event_type", "helm_module", "component", "prompt", "response", "stack_trace"}

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        module = getattr(record, 'helm_module', record.module)
        component = getattr(record, 'component', '')
        event_type = getattr(record, 'event_type', '')

        prefix = f"{timestamp} [{record.levelname}]"
        if module and component:
            prefix += f" [{module}.{component}]"

        message = record.getMessage()
        if event_type and event_type != message:
            message = f"{event_type}: {message}" if message else event_type

        data = getattr(record, 'event_data', {})
        fields = " ".join(
            f"{key}={value}" for key, value in data.items()
            if key not in self.SKIP_FIELDS
        )
        return f"{prefix} {message} {fields}".rstrip()
