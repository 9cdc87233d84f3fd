"""
Redis：患者仪表盘缓存失效 + webhook 幂等键
Redis 出问题时都降级（缓存失效跳过、幂等检查视为首次）
"""
import logging

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

_client = None


def _get_client():
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.REDIS_URL,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    return _client


def dashboard_key(tenant_id, patient_id):
    return f"dashboard:{tenant_id}:{patient_id}"


def invalidate_dashboard_cache(patient_id, tenant_id=None):
    if not patient_id:
        return
    try:
        _get_client().delete(dashboard_key(tenant_id or "-", patient_id))
    except redis.RedisError:
        logger.warning("dashboard cache invalidation failed: patient=%s", patient_id, exc_info=True)


def claim_once(namespace, key, ttl_seconds):
    """
    SET NX EX：第一次返回 True，TTL 内重复返回 False
    """
    try:
        return bool(_get_client().set(f"idem:{namespace}:{key}", "1", nx=True, ex=ttl_seconds))
    except redis.RedisError:
        logger.warning("idempotency check unavailable: %s:%s", namespace, key, exc_info=True)
        return True
