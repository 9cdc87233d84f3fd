"""
LINE Messaging API 实现
"""
import logging

import requests
from django.conf import settings

from .base import BaseMessagingService, MessagingError

logger = logging.getLogger(__name__)


class LineMessagingService(BaseMessagingService):
    """LINE Messaging API（push + 富菜单绑定）"""

    provider_id = "line"

    def __init__(self, *, access_token: str, api_base: str | None = None, timeout: float | None = None):
        self._access_token = access_token
        self._api_base = (api_base or getattr(settings, "LINE_API_BASE", "https://api.line.me")).rstrip("/")
        self._timeout = timeout or getattr(settings, "LINE_TIMEOUT_SECONDS", 10)

    def _headers(self):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._access_token}",
        }

    def _post(self, path, payload=None):
        if not self._access_token:
            raise MessagingError("LINE access token not configured")
        url = f"{self._api_base}{path}"
        try:
            resp = requests.post(url, json=payload, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise MessagingError(f"LINE request failed: {exc}") from exc
        if not resp.ok:
            raise MessagingError(
                f"LINE API returned {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        logger.debug("LINE %s status=%s", path, resp.status_code)
        return resp

    def push(self, to: str, messages: list[dict]) -> None:
        self._post("/v2/bot/message/push", {"to": to, "messages": messages})

    def link_rich_menu(self, user_id: str, rich_menu_id: str) -> None:
        self._post(f"/v2/bot/user/{user_id}/richmenu/{rich_menu_id}")
