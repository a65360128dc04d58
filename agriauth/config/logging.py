"""
Logging configuration for the authorization service.

This module provides centralized logging configuration with structured JSON
output and a small helper for the engine's recurring log events
(authorization decisions, configuration faults, audit write failures).
"""

import logging
import logging.config
import sys
from typing import Dict, Any, Iterable, Optional

# Operational channel for audit storage problems
AUDIT_OPS_LOGGER = "agriauth.audit.ops"


def get_logging_config(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    enable_access_log: bool = True
) -> Dict[str, Any]:
    """
    Get logging configuration dictionary.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        log_file: Optional log file path
        enable_access_log: Whether to enable HTTP access logging

    Returns:
        Logging configuration dictionary
    """
    formatters = {
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S"
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(module)s %(lineno)d %(message)s"
        }
    }

    formatter_name = "json" if log_format == "json" else "detailed"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter_name,
            "stream": sys.stdout
        }
    }

    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": formatter_name,
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf8"
        }

    handler_names = list(handlers.keys())
    loggers = {
        "": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "uvicorn.error": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        "agriauth": {
            "level": log_level,
            "handlers": handler_names,
            "propagate": False
        },
        # Audit storage failures must stay visible whatever the service level is
        AUDIT_OPS_LOGGER: {
            "level": "WARNING",
            "handlers": handler_names,
            "propagate": False
        }
    }

    if enable_access_log:
        loggers["uvicorn.access"] = {
            "level": "INFO",
            "handlers": handler_names,
            "propagate": False
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": loggers
    }


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    enable_access_log: bool = True
) -> None:
    """Apply the logging configuration."""
    config = get_logging_config(
        log_level=log_level,
        log_format=log_format,
        log_file=log_file,
        enable_access_log=enable_access_log
    )

    logging.config.dictConfig(config)


class StructuredLogger:
    """
    Structured logger for the engine's recurring events.

    Field names are kept stable so operators can alert on them.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_decision(
        self,
        actor_id: str,
        actor_role: str,
        required: Iterable[str],
        allowed: bool,
        matched_role: Optional[str] = None,
        **kwargs
    ):
        """Log an authorization decision.

        Denials are expected traffic and go out at INFO; grants at DEBUG.
        """
        log_data = {
            "event": "authz_decision",
            "actor_id": actor_id,
            "actor_role": actor_role,
            "required": list(required),
            "allowed": allowed,
        }
        if matched_role:
            log_data["matched_role"] = matched_role
        log_data.update(kwargs)

        if allowed:
            self.logger.debug("Access granted", extra=log_data)
        else:
            self.logger.info("Access denied", extra=log_data)

    def log_configuration_fault(self, fault: Exception, **kwargs):
        """Log a policy misconfiguration detected while serving a request."""
        log_data = {
            "event": "authz_configuration_fault",
            "fault_type": type(fault).__name__,
            "error": str(fault),
        }
        log_data.update(kwargs)
        self.logger.error("Authorization configuration fault", extra=log_data)

    def log_audit_failure(self, action: str, error: Exception, attempt: int = 1, **kwargs):
        """Log an audit entry that could not be stored."""
        log_data = {
            "event": "audit_write_failure",
            "action": action,
            "error_type": type(error).__name__,
            "error": str(error),
            "attempt": attempt,
        }
        log_data.update(kwargs)
        self.logger.error("Audit entry not stored", extra=log_data)
