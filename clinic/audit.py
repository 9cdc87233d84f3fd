"""
审计日志：动作名用点分命名空间（reorder.approve / reorder.reject ...）
写失败只记日志，不影响业务
"""
import logging

from django.db import DatabaseError

from .models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(tenant_id, action, resource_type, resource_id, details=None, actor=""):
    try:
        return AuditLog.objects.create(
            tenant_id=tenant_id,
            actor=actor or "",
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details or {},
        )
    except DatabaseError:
        logger.exception("audit write failed: action=%s %s:%s", action, resource_type, resource_id)
        return None
