"""
Centralized audit logging.
Every status transition, request resolution, import commit and bulk update is
written as one JSON line to the dedicated "audit" logger so the trail can be
shipped to a file for later review.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from cableops.models.actor import Actor

audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)
audit_logger.propagate = False  # Don't duplicate to root logger


def configure_audit_file(path: str) -> None:
    """Attach a JSON-lines file handler to the audit logger (once)."""
    for handler in audit_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename.endswith(path):
            return
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(file_handler)


def log_action(
    action: str,
    resource_type: str,
    resource_id: str,
    actor: Optional[Actor] = None,
    details: Optional[dict] = None,
    status: str = "success",
) -> dict:
    """
    Log a business-relevant action to the audit log.

    Args:
        action: The action performed (e.g., "STATUS_CHANGE", "IMPORT", "APPROVE")
        resource_type: Type of resource affected (e.g., "customer", "action_request")
        resource_id: Identifier of the affected resource
        actor: The user who performed the action (optional)
        details: Additional context dictionary (optional)
        status: "success" or "failure"

    Returns:
        The entry that was written.
    """
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.upper(),
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "user": actor.id if actor else "system",
        "user_role": actor.role.value if actor else "unknown",
        "status": status,
    }

    if details:
        log_entry["details"] = details

    audit_logger.info(json.dumps(log_entry, ensure_ascii=False, default=str))
    return log_entry
