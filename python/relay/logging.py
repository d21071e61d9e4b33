"""structlog setup for the relay.

Every event carries whatever request-scoped fields are known at the time it
is emitted: request_id, user_id, path, method and, once the provider context
has been resolved, provider_mode. Fields passed explicitly to a log call
take precedence over the request-scoped ones.

    from relay.logging import get_logger

    logger = get_logger(__name__)
    logger.info("session_archived", session_id=session_id)

API keys, session keys and vault ciphertext are never passed as log fields.
`redact_secrets` masks the known secret-bearing field names in case one
slips through.
"""

import logging
import sys
from collections.abc import Mapping
from contextvars import ContextVar
from typing import Any

import structlog

SECRET_FIELDS = frozenset(
    {"api_key", "authorization", "x-api-key", "session_key", "encrypted_api_key", "token"}
)
REDACTED = "[redacted]"

_request_context: ContextVar[Mapping[str, str]] = ContextVar("relay_request_context", default={})


def _update_context(**fields: str | None) -> None:
    merged = dict(_request_context.get())
    merged.update({key: value for key, value in fields.items() if value is not None})
    _request_context.set(merged)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind request fields for the current context. None leaves a field as it was."""
    _update_context(request_id=request_id, user_id=user_id, path=path, method=method)


def set_provider_mode(mode: str | None) -> None:
    _update_context(provider_mode=mode)


def clear_request_context() -> None:
    _request_context.set({})


def get_request_id() -> str | None:
    return _request_context.get().get("request_id")


def add_request_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor: merge the request-scoped fields into the event."""
    for key, value in _request_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """structlog processor: mask values of secret-bearing fields."""
    for key in event_dict.keys() & SECRET_FIELDS:
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(json_format: bool = True, level: int = logging.INFO) -> None:
    """Install structlog and route stdlib loggers through the same renderer.

    Args:
        json_format: JSON lines when True, the dev console renderer otherwise.
        level: Root log level.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
