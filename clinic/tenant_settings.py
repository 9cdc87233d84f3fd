"""
租户配置读取：TenantSetting 表优先，其次 django settings（环境变量）
"""
from django.conf import settings

from .models import TenantSetting


def get_tenant_setting(tenant_id, category, key, default=None):
    row = (
        TenantSetting.objects
        .filter(tenant_id=tenant_id, category=category, key=key)
        .values_list("value", flat=True)
        .first()
    )
    return default if row is None else row


def get_setting_or_env(tenant_id, category, key, settings_name, default=""):
    """
    例：get_setting_or_env(tid, "line", "admin_group_id", "LINE_ADMIN_GROUP_ID")
    表里存的是 JSON；字符串配置直接存成 JSON 字符串
    """
    value = get_tenant_setting(tenant_id, category, key)
    if value not in (None, "", {}):
        return value
    return getattr(settings, settings_name, default)
