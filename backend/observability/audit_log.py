"""Audit logging: persists structured audit events via the audit store.

Best-effort: an audit write failure is logged and never fails the request.
"""
import logging
from typing import Any, Dict, Optional

from config.settings import get_settings
from core.exceptions import StoreUnavailableError
from schemas.audit import AuditEvent, AuditEventType
from observability.redaction import redact_dict
from store.orchestrator import get_audit_store

logger = logging.getLogger(__name__)


async def log_audit_event(
    event_type: AuditEventType,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> str:
    """Create and persist an audit event. Returns event_id."""
    event = AuditEvent(
        event_type=event_type,
        session_id=session_id,
        user_id=user_id,
        details=details or {},
        env=get_settings().ENV,
    )
    try:
        await get_audit_store().insert_event(event)
    except StoreUnavailableError as e:
        logger.warning("AUDIT write failed: event=%s session=%s error=%s", event_type.value, session_id, e.message)

    # Log with redacted details
    safe_details = redact_dict(details or {})
    logger.info(
        "AUDIT event=%s session=%s user=%s details=%s",
        event_type.value,
        session_id,
        user_id,
        safe_details,
    )
    return event.event_id
