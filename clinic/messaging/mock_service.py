"""
Mock 实现：不调 LINE API，只把调用写日志并记在实例内存里（本地开发 / 测试用）
"""
import logging
from collections import deque

from .base import BaseMessagingService

logger = logging.getLogger(__name__)

# 每个实例最多保留的调用记录数
HISTORY_SIZE = 100


class MockMessagingService(BaseMessagingService):

    provider_id = "mock"

    def __init__(self, history_size: int = HISTORY_SIZE):
        self.sent: deque = deque(maxlen=history_size)
        self.linked: deque = deque(maxlen=history_size)

    def push(self, to: str, messages: list[dict]) -> None:
        logger.info("[mock LINE] push to=%s messages=%d", to, len(messages))
        self.sent.append({"to": to, "messages": messages})

    def link_rich_menu(self, user_id: str, rich_menu_id: str) -> None:
        logger.info("[mock LINE] link rich menu user=%s menu=%s", user_id, rich_menu_id)
        self.linked.append({"user_id": user_id, "rich_menu_id": rich_menu_id})
