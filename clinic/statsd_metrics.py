"""
Worker 进程指标：通过 StatsD UDP 发送，由 statsd_exporter 暴露给 Prometheus
不依赖进程内存，多进程 prefork 下可正确聚合
"""
import logging
import os

import statsd

logger = logging.getLogger(__name__)

# 从环境变量读取，默认 statsd_exporter 容器名
_STATSD_HOST = os.getenv("STATSD_HOST", "statsd_exporter")
_STATSD_PORT = int(os.getenv("STATSD_PORT", "9125"))
_PREFIX = "clinic"

_client = None


def _get_client():
    global _client
    if _client is None:
        _client = statsd.StatsClient(_STATSD_HOST, _STATSD_PORT, prefix=_PREFIX)
    return _client


def _send(method, *args):
    # StatsClient 初始化时会解析主机名；exporter 不可达时只记日志
    try:
        getattr(_get_client(), method)(*args)
    except OSError:
        logger.debug("statsd unavailable, dropped %s %s", method, args)


def line_push_sent(channel: str):
    # 用 metric 名携带 channel，由 statsd_exporter mapping 转为 label
    _send("incr", f"line_push_sent.{channel}")


def line_push_failed(channel: str):
    _send("incr", f"line_push_failed.{channel}")


def line_push_retry():
    _send("incr", "line_push_retry")


def line_push_latency_seconds(seconds: float):
    _send("timing", "line_push_latency", int(seconds * 1000))


def rich_menu_linked():
    _send("incr", "rich_menu_linked")


def rich_menu_sync_duration_seconds(seconds: float):
    _send("timing", "rich_menu_sync_duration", int(seconds * 1000))
