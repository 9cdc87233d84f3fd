"""
消息平台服务抽象基类
业务代码只依赖此接口，不关心是真实 LINE 还是 mock
"""
from abc import ABC, abstractmethod


class MessagingError(Exception):
    """推送 / 富菜单绑定失败（非 2xx 或网络错误）"""

    def __init__(self, message, status_code=None, body=""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BaseMessagingService(ABC):
    """
    抽象基类：所有消息平台服务的父类
    """

    provider_id: str = "unknown"  # 子类覆盖，如 "line", "mock"

    @abstractmethod
    def push(self, to: str, messages: list[dict]) -> None:
        """
        推送消息
        :param to: LINE 用户 ID 或群组 ID
        :param messages: LINE message object 列表（text / flex）
        """
        pass

    @abstractmethod
    def link_rich_menu(self, user_id: str, rich_menu_id: str) -> None:
        """把富菜单绑定到用户"""
        pass
