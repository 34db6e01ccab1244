from __future__ import annotations

import logging
import re
import sys
from collections.abc import Callable, Mapping
from typing import Any, TextIO


_REDACT_PATTERN = re.compile(r"(?i)(authorization|token|oauth_code|client_secret|password)=([^\s,;]+)")
_BEARER_PATTERN = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9._~+/-]+=*")
_SECRET_KEYS = ("authorization", "token", "oauth_code", "client_secret", "password", "bearer")

LOG_FIELD_DEFAULTS: dict[str, Any] = {
    "session_id": "",
    "phase": "",
    "component": "",
    "operation": "",
    "result": "",
    "duration_ms": 0,
    "error_class": "",
}

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s: "
    "session_id=%(session_id)s phase=%(phase)s "
    "component=%(component)s operation=%(operation)s result=%(result)s "
    "duration_ms=%(duration_ms)s error_class=%(error_class)s %(message)s"
)


class StructuredLogDefaultsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LOG_FIELD_DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        try:
            message = record.getMessage()
        except Exception:
            return True
        lowered = message.lower()
        if any(secret_key in lowered for secret_key in _SECRET_KEYS):
            redacted = _REDACT_PATTERN.sub(r"\1=[redacted]", message)
            record.msg = _BEARER_PATTERN.sub(r"\1 [redacted]", redacted)
            record.args = ()
        return True


def log_extra(component: str, operation: str, result: str, **fields: Any) -> dict[str, Any]:
    extra = dict(LOG_FIELD_DEFAULTS)
    extra.update({"component": component, "operation": operation, "result": result})
    extra.update(fields)
    return extra


def normalize_log_level(value: Any) -> str:
    level = str(value or "info").strip().lower()
    if level in {"critical", "error", "warning", "info", "debug"}:
        return level
    return "info"


def configure_structured_logger(logger: logging.Logger, *, level: str, stream: TextIO | None = None) -> None:
    handler = logging.StreamHandler(stream or sys.__stderr__)
    handler.addFilter(StructuredLogDefaultsFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, normalize_log_level(level).upper(), logging.INFO))
    logger.propagate = False


def configure_domain_log_levels(
    *,
    domains: Mapping[str, Any] | None,
    logger_prefix: str,
    normalize_level: Callable[[Any], str] = normalize_log_level,
) -> None:
    if not isinstance(domains, Mapping):
        return
    for domain, level_value in domains.items():
        normalized_domain = str(domain or "").strip().lower()
        if not normalized_domain:
            continue
        level = normalize_level(level_value)
        logging.getLogger(f"{logger_prefix}.{normalized_domain}").setLevel(
            getattr(logging, level.upper(), logging.INFO)
        )
