"""
统一异常处理：将 BaseAppException 转为统一 JSON 格式
"""
import logging

from django.http import JsonResponse

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def app_exception_handler(request, exception):
    """
    处理 BaseAppException 及其子类，转为统一 JSON
    其他异常返回 None，交给 Django 默认处理（500）
    """
    if not isinstance(exception, BaseAppException):
        return None

    _record_exception_metric(exception)
    logger.info(
        "request rejected: path=%s code=%s status=%s",
        getattr(request, "path", ""),
        exception.code,
        exception.http_status,
    )
    return JsonResponse(
        exception.to_dict(),
        status=exception.http_status,
        json_dumps_params={"ensure_ascii": False},
    )


def _record_exception_metric(exception):
    """记录异常指标（避免循环导入）"""
    try:
        from clinic.metrics import (
            VALIDATION_ERROR,
            BLOCK_ERROR,
            REORDER_GATE_REJECTED,
        )
        from .exceptions import (
            ValidationError,
            BlockError,
            BlockedError,
            DuplicateRequestError,
        )

        if isinstance(exception, ValidationError):
            VALIDATION_ERROR.inc()
        elif isinstance(exception, BlockError):
            code = getattr(exception, "code", "UNKNOWN")
            BLOCK_ERROR.labels(code=code).inc()
            if isinstance(exception, (BlockedError, DuplicateRequestError)):
                REORDER_GATE_REJECTED.labels(code=code).inc()
    except ImportError:
        pass
