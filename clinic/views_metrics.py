"""
Prometheus /metrics 端点

抓取时顺便刷新「未处理申请数」gauge（pending / confirmed 按状态计数），
其余指标由业务代码在各自的状态变更处累加。
"""
from django.db.models import Count
from django.http import HttpResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.http import require_GET
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .metrics import OPEN_REORDERS
from .models import ReorderRequest


def refresh_open_reorders():
    counts = dict.fromkeys(ReorderRequest.OPEN_STATUSES, 0)
    rows = (
        ReorderRequest.objects.filter(status__in=ReorderRequest.OPEN_STATUSES)
        .values("status")
        .annotate(n=Count("id"))
    )
    for row in rows:
        counts[row["status"]] = row["n"]
    for status, n in counts.items():
        OPEN_REORDERS.labels(status=status).set(n)


@require_GET
@never_cache
def metrics(request):
    refresh_open_reorders()
    return HttpResponse(generate_latest(REGISTRY), content_type=CONTENT_TYPE_LATEST)
