"""
Audit Service

Records who changed which hiring entity and how. Rows are added to the
current session so they commit or roll back with the operation that
produced them.
"""

from typing import Optional, Dict, Any
import logging
import json
from flask import has_request_context, request
from models import db, AuditLog
from .caller import SYSTEM_ACTOR

logger = logging.getLogger(__name__)

class AuditService:
    """Service class for centralized audit logging"""

    @staticmethod
    def log_action(action: str,
                   user_id: Optional[str],
                   entity_type: Optional[str] = None,
                   entity_id: Optional[int] = None,
                   details: Optional[Dict[str, Any]] = None) -> AuditLog:
        """
        Log an audit event with request context.

        Args:
            action: Action performed (e.g., 'accept_job_request', 'terminate_employment')
            user_id: Identity-service id of the actor, None for system operations
            entity_type: Type of entity affected (e.g., 'job_request', 'employment')
            entity_id: ID of the affected entity
            details: Additional details about the action

        Returns:
            AuditLog: the pending audit row
        """
        audit = AuditLog()
        audit.user_id = user_id or SYSTEM_ACTOR
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        audit.new_values = json.dumps(details, default=str) if details else None

        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:500]

        # The caller's transaction owns the commit
        db.session.add(audit)
        logger.debug(f"Audit logged: {action} by {audit.user_id}")
        return audit

