import os
import logging

from celery import Celery
from celery.signals import worker_ready

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clinic_ops.settings')

logger = logging.getLogger(__name__)

app = Celery('clinic_ops')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()


@worker_ready.connect
def setup_metrics_server(sender, **kwargs):
    """Worker 就绪后启动 Prometheus metrics HTTP 服务（daemon 线程）"""
    try:
        from clinic.celery_metrics import start_metrics_server
        port = start_metrics_server()
        logger.info("worker metrics listening on :%s", port)
    except OSError:
        logger.warning("metrics server not started (port in use?)", exc_info=True)
