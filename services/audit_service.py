"""
Audit Service

Records business actions (trip edits, settlements, approvals, logins) in
the audit log. Entries join the caller's transaction; nothing here commits.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from flask import has_request_context, request
from flask_login import current_user
from models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for centralized audit logging"""

    def __init__(self, store=None):
        from .record_store import RecordStore
        self.store = store or RecordStore()

    def log_action(self, action: str,
                   entity_type: Optional[str] = None,
                   entity_id: Optional[int] = None,
                   details: Optional[Dict[str, Any]] = None,
                   user_id: Optional[int] = None) -> AuditLog:
        """
        Add an audit entry to the current session.

        Args:
            action: Action performed (e.g. 'settle_trip', 'approve_trip_request')
            entity_type: Type of entity affected (e.g. 'trip', 'payment')
            entity_id: ID of the affected entity
            details: Additional details stored as JSON
            user_id: Acting user, defaults to the logged in user; None for system actions
        """
        if user_id is None and has_request_context() and current_user.is_authenticated:
            user_id = current_user.id

        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        audit.new_values = json.dumps(details, ensure_ascii=False, default=str) if details else None

        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:500]

        self.store.add_audit_log(audit)
        logger.debug(f"Audit logged: {action} by user {user_id}")
        return audit

    def get_entity_history(self, entity_type: str, entity_id: int, limit: int = 50) -> List[AuditLog]:
        return self.store.list_audit_logs(entity_type=entity_type, entity_id=entity_id, limit=limit)

    def get_recent_activities(self, limit: int = 20) -> List[AuditLog]:
        return self.store.list_audit_logs(limit=limit)
