"""
Worker 进程的 Prometheus 端点

LINE 推送、富菜单切换都在 Celery worker 里执行，worker 与 Web 不共享进程内的
指标，因此在 worker_ready 时单独开一个 HTTP 端口。
"""
from django.conf import settings
from prometheus_client import start_http_server


def start_metrics_server(port=None):
    """在 daemon 线程启动 metrics HTTP 服务，返回实际使用的端口"""
    from clinic import metrics  # noqa: F401 注册 side-effect 失败等计数器

    port = port or settings.WORKER_METRICS_PORT
    start_http_server(port)
    return port
