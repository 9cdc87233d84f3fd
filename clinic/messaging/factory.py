"""
工厂函数：根据 channel 和配置返回对应消息服务
- patient：患者用 channel（LINE_CHANNEL_ACCESS_TOKEN）
- admin：管理员群通知 channel（LINE_NOTIFY_CHANNEL_ACCESS_TOKEN）
"""
from typing import Dict

from django.conf import settings

from clinic.tenant_settings import get_setting_or_env

from .base import BaseMessagingService
from .line_service import LineMessagingService
from .mock_service import MockMessagingService

# channel -> (TenantSetting key, settings 名)
_CHANNEL_TOKENS: Dict[str, tuple[str, str]] = {
    "patient": ("channel_access_token", "LINE_CHANNEL_ACCESS_TOKEN"),
    "admin": ("notify_channel_access_token", "LINE_NOTIFY_CHANNEL_ACCESS_TOKEN"),
}


def get_messaging_service(channel: str = "patient", tenant_id: str | None = None) -> BaseMessagingService:
    """
    Mock 模式优先：USE_MOCK_LINE=1 时强制使用 mock
    """
    channel = str(channel).lower()
    if channel not in _CHANNEL_TOKENS:
        raise ValueError(f"Unknown messaging channel: {channel}. Known: {list(_CHANNEL_TOKENS.keys())}")

    if getattr(settings, "USE_MOCK_LINE", True):
        return MockMessagingService()

    key, settings_name = _CHANNEL_TOKENS[channel]
    token = get_setting_or_env(tenant_id, "line", key, settings_name)
    return LineMessagingService(access_token=token)


def get_admin_group_id(tenant_id: str | None = None) -> str:
    return get_setting_or_env(tenant_id, "line", "admin_group_id", "LINE_ADMIN_GROUP_ID") or ""
