"""Audit trail for the night terror protocol: one JSON line per event, best effort."""

import json
import logging
from typing import Any, Callable

from .bio_models import AuditEvent

AuditSink = Callable[[AuditEvent], None]

logger = logging.getLogger(__name__)

# Separate logger so the audit trail can be routed to its own handler.
audit_logger = logging.getLogger("sleepguard.audit")


def _truncate_str(s: str, max_len: int = 500) -> str:
    return s if len(s) <= max_len else s[:max_len] + "...<truncated>"


def _sanitize_value(v: Any, depth: int = 0, max_depth: int = 3) -> Any:
    """Keep audit lines small and JSON-safe."""
    if depth > max_depth:
        return "<max_depth>"
    if v is None or isinstance(v, (int, float, bool)):
        return v
    if isinstance(v, str):
        return _truncate_str(v)
    if isinstance(v, (list, tuple)):
        return [_sanitize_value(x, depth + 1, max_depth) for x in list(v)[:50]]
    if isinstance(v, dict):
        return {str(k): _sanitize_value(vv, depth + 1, max_depth) for k, vv in v.items()}
    return _truncate_str(str(v))


# Used by: main.py lifespan (default sink for the service)
def log_audit_sink(event: AuditEvent) -> None:
    line = json.dumps(_sanitize_value(event.to_dict()), ensure_ascii=False, separators=(",", ":"))
    if event.type.value in ("cue_failed", "source_error"):
        audit_logger.warning(line)
    else:
        audit_logger.info(line)


def noop_audit_sink(event: AuditEvent) -> None:
    pass


# Used by: NightTerrorProtocol._audit()
def emit_audit(sink: AuditSink, event: AuditEvent) -> None:
    """Sink failures never reach the protocol."""
    try:
        sink(event)
    except Exception as e:
        logger.error(f"Audit sink failed for {event.type.value}: {e}")
