"""
中间件：
- TenantMiddleware：从请求头解析 tenant_id，挂到 request 上
- AppExceptionMiddleware：捕获 View 中抛出的 BaseAppException，交由 exception_handler 处理
"""
from django.conf import settings

from .exception_handler import app_exception_handler

TENANT_HEADER = "HTTP_X_TENANT_ID"


def resolve_tenant_id(request):
    """X-Tenant-Id 请求头优先，否则用 settings.DEFAULT_TENANT_ID"""
    tenant_id = (request.META.get(TENANT_HEADER) or "").strip()
    return tenant_id or getattr(settings, "DEFAULT_TENANT_ID", "default")


class TenantMiddleware:
    """每个请求都带上 request.tenant_id"""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.tenant_id = resolve_tenant_id(request)
        return self.get_response(request)


class AppExceptionMiddleware:
    """
    将 BaseAppException 转为统一 JSON 响应
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        response = app_exception_handler(request, exception)
        if response is not None:
            return response
        return None
