"""Remote event sink forwarding job events to Storage API.

Local diagnostics go through the ``lgr_runner`` logger. Events that the
monitoring service should see are sent explicitly through an EventSink at
the call sites that need them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .exceptions import StorageApiError
from .logging import get_logger
from .storage import StorageApiClient

DEFAULT_COMPONENT = "docker-lgr-bundle"


class EventSink(ABC):
    """Destination for job events."""

    @abstractmethod
    def emit(
        self,
        message: str,
        level: int = logging.INFO,
        results: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send an event. Returns True when the event was forwarded."""

    def info(self, message: str, **kwargs: Any) -> bool:
        return self.emit(message, logging.INFO, **kwargs)

    def warn(self, message: str, **kwargs: Any) -> bool:
        return self.emit(message, logging.WARNING, **kwargs)

    def error(self, message: str, **kwargs: Any) -> bool:
        return self.emit(message, logging.ERROR, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> bool:
        return self.emit(message, logging.CRITICAL, **kwargs)


class NullEventSink(EventSink):
    """Event sink used when no Storage API client is available."""

    def emit(self, message, level=logging.INFO, results=None) -> bool:
        return False


class StorageEventSink(EventSink):
    """Forward events to Storage API."""

    def __init__(self, client: StorageApiClient, component: str = DEFAULT_COMPONENT):
        self.client = client
        self.component = component
        self.logger = get_logger()

    def build_event(
        self,
        message: str,
        level: int,
        results: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Map a log level and message to a Storage API event payload."""
        event: Dict[str, Any] = {
            "component": self.component,
            "message": message,
            "params": {},
            "results": results or {},
        }
        if self.client.run_id:
            event["runId"] = self.client.run_id

        if level >= logging.CRITICAL:
            event["type"] = "error"
            event["message"] = "Application error"
            event["description"] = "Contact support@keboola.com"
        elif level >= logging.ERROR:
            event["type"] = "error"
        elif level >= logging.WARNING:
            event["type"] = "warn"
        else:
            event["type"] = "info"
        return event

    def emit(self, message, level=logging.INFO, results=None) -> bool:
        # Debug messages stay local
        if level <= logging.DEBUG:
            return False

        try:
            self.client.create_event(self.build_event(message, level, results))
        except StorageApiError as exc:
            self.logger.warning(
                f"Failed to forward event to Storage API: {exc}",
                extra={"event_type": "event_forward_failed"},
            )
            return False
        return True
