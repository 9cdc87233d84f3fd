"""
消息平台抽象层：业务代码不依赖具体实现（LINE / mock），通过配置切换
"""
from .base import BaseMessagingService, MessagingError
from .line_service import LineMessagingService
from .mock_service import MockMessagingService
from .factory import get_messaging_service, get_admin_group_id

__all__ = [
    "BaseMessagingService",
    "MessagingError",
    "LineMessagingService",
    "MockMessagingService",
    "get_messaging_service",
    "get_admin_group_id",
]
