"""Structured logging with secret masking."""

import json
import logging
import re
from typing import Any, Dict, Iterable, Optional

MASK = "*****"


def mask_secret(text: str, *secrets: Optional[str]) -> str:
    """Replace every occurrence of the given secrets in text with a fixed mask.

    Args:
        text: Text that may contain secrets
        secrets: Secret values to hide (empty values are ignored)

    Returns:
        Text with secrets masked
    """
    for secret in secrets:
        if secret:
            text = text.replace(secret, MASK)
    return text


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with secret redaction."""

    def __init__(
        self, redact_secrets: bool = False, secrets: Optional[Iterable[str]] = None
    ):
        super().__init__()
        self.redact_secrets = redact_secrets
        self.secrets = [s for s in (secrets or []) if s]
        # Patterns for common secret fields
        self.secret_patterns = [
            r'(password["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)',
            r'(token["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)',
            r'(secret["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)',
        ]

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with optional secret redaction."""
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in ("event_type", "job_name", "run_id", "exit_code"):
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        # Mask before encoding, JSON escaping would hide quotes and backslashes
        if self.secrets:
            log_data = {key: self._mask(value) for key, value in log_data.items()}
        log_str = json.dumps(log_data, default=str)
        if self.redact_secrets:
            for pattern in self.secret_patterns:
                log_str = re.sub(
                    pattern, rf"\g<1>{MASK}", log_str, flags=re.IGNORECASE
                )
        return log_str

    def _mask(self, value: Any) -> Any:
        if isinstance(value, str):
            return mask_secret(value, *self.secrets)
        if isinstance(value, dict):
            return {k: self._mask(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._mask(v) for v in value]
        if value is None or isinstance(value, (bool, int, float)):
            return value
        return mask_secret(str(value), *self.secrets)


def setup_logging(
    level: str = "INFO",
    redact_secrets: bool = False,
) -> logging.Logger:
    """Set up structured JSON logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        redact_secrets: Whether to redact secret-looking fields in logs

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("lgr_runner")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJSONFormatter(redact_secrets=redact_secrets))
    logger.addHandler(handler)

    return logger


def register_secret(secret: Optional[str]) -> None:
    """Mask a secret value in everything the runner logger emits from now on.

    Args:
        secret: Secret value (e.g., the warehouse password)
    """
    if not secret:
        return
    for handler in logging.getLogger("lgr_runner").handlers:
        if isinstance(handler.formatter, StructuredJSONFormatter):
            if secret not in handler.formatter.secrets:
                handler.formatter.secrets.append(secret)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional logger name (defaults to 'lgr_runner')

    Returns:
        Logger instance
    """
    return logging.getLogger(name or "lgr_runner")
