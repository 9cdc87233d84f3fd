"""
Celery 异步任务：LINE 推送、富菜单重新评估
推送失败时指数退避重试（最多 3 次）；最终失败只记日志和指标，不向调用方抛出
"""
import logging
import time

from celery import shared_task

from clinic import statsd_metrics
from clinic.messaging import MessagingError, get_messaging_service
from clinic.menu_rules import apply_menu_rules

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def push_line_message_task(self, channel, to, messages, tenant_id=None):
    """
    channel: "patient" / "admin"
    to: LINE 用户 ID 或群组 ID；为空时直接跳过
    失败时指数退避重试：2^retries 秒（1次:2s, 2次:4s, 3次:8s）
    """
    if not to:
        logger.info("line push skipped, no recipient: channel=%s", channel)
        return False

    start = time.perf_counter()
    try:
        get_messaging_service(channel, tenant_id).push(to, messages)
    except MessagingError as exc:
        if self.request.retries >= self.max_retries:
            statsd_metrics.line_push_failed(channel)
            logger.error(
                "line push gave up: channel=%s to=%s status=%s error=%s",
                channel, to, exc.status_code, exc,
            )
            return False
        statsd_metrics.line_push_retry()
        logger.warning("line push failed, retrying: channel=%s attempt=%s", channel, self.request.retries + 1)
        raise self.retry(exc=exc, countdown=2 ** self.request.retries)

    statsd_metrics.line_push_sent(channel)
    statsd_metrics.line_push_latency_seconds(time.perf_counter() - start)
    return True


@shared_task
def apply_menu_rules_task(tenant_id, patient_id):
    """患者状态变化后重新评估菜单；返回匹配的规则 id"""
    rule = apply_menu_rules(tenant_id, patient_id)
    return rule.id if rule else None
