"""
Messaging layer: LINE client, factory selection, and the push task's retry policy.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from clinic.messaging import (
    LineMessagingService,
    MessagingError,
    MockMessagingService,
    get_admin_group_id,
    get_messaging_service,
)
from clinic.models import TenantSetting
from clinic.tasks import push_line_message_task


class TestLineMessagingService:

    def test_push_posts_to_line_api(self):
        service = LineMessagingService(access_token="tok", api_base="https://line.test")
        with patch("clinic.messaging.line_service.requests.post") as mock_post:
            mock_post.return_value = MagicMock(ok=True, status_code=200)
            service.push("U1", [{"type": "text", "text": "hi"}])

        args, kwargs = mock_post.call_args
        assert args[0] == "https://line.test/v2/bot/message/push"
        assert kwargs["json"] == {"to": "U1", "messages": [{"type": "text", "text": "hi"}]}
        assert kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_link_rich_menu(self):
        service = LineMessagingService(access_token="tok", api_base="https://line.test")
        with patch("clinic.messaging.line_service.requests.post") as mock_post:
            mock_post.return_value = MagicMock(ok=True, status_code=200)
            service.link_rich_menu("U1", "richmenu-1")
        assert mock_post.call_args[0][0] == "https://line.test/v2/bot/user/U1/richmenu/richmenu-1"

    def test_error_status_raises(self):
        service = LineMessagingService(access_token="tok", api_base="https://line.test")
        with patch("clinic.messaging.line_service.requests.post") as mock_post:
            mock_post.return_value = MagicMock(ok=False, status_code=400, text="bad request")
            with pytest.raises(MessagingError) as exc_info:
                service.push("U1", [])
        assert exc_info.value.status_code == 400

    def test_network_error_raises(self):
        service = LineMessagingService(access_token="tok", api_base="https://line.test")
        with patch("clinic.messaging.line_service.requests.post", side_effect=requests.ConnectionError("down")):
            with pytest.raises(MessagingError):
                service.push("U1", [])

    def test_missing_token(self):
        with pytest.raises(MessagingError):
            LineMessagingService(access_token="").push("U1", [])


class TestMockMessagingService:

    def test_history_is_per_instance(self):
        first, second = MockMessagingService(), MockMessagingService()
        first.push("U1", [{"type": "text", "text": "hi"}])
        assert list(first.sent) == [{"to": "U1", "messages": [{"type": "text", "text": "hi"}]}]
        assert list(second.sent) == []

    def test_history_is_bounded(self):
        service = MockMessagingService(history_size=3)
        for i in range(5):
            service.push(f"U{i}", [])
            service.link_rich_menu(f"U{i}", "richmenu-1")
        assert [m["to"] for m in service.sent] == ["U2", "U3", "U4"]
        assert len(service.linked) == 3


@pytest.mark.django_db
class TestFactory:

    def test_mock_mode(self):
        assert isinstance(get_messaging_service("patient"), MockMessagingService)

    def test_real_mode_uses_channel_token(self, settings):
        settings.USE_MOCK_LINE = False
        settings.LINE_NOTIFY_CHANNEL_ACCESS_TOKEN = "admin-token"
        service = get_messaging_service("admin")
        assert isinstance(service, LineMessagingService)
        assert service._access_token == "admin-token"

    def test_tenant_setting_overrides_env(self, settings, tenant_id):
        settings.USE_MOCK_LINE = False
        TenantSetting.objects.create(
            tenant_id=tenant_id, category="line", key="channel_access_token", value="tenant-token",
        )
        assert get_messaging_service("patient", tenant_id)._access_token == "tenant-token"

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            get_messaging_service("sms")

    def test_admin_group_id(self, tenant_id):
        assert get_admin_group_id(tenant_id) == "C-admin-group"


@pytest.mark.django_db
class TestPushTask:

    def test_push_success(self, mock_line, statsd_client):
        assert push_line_message_task.apply(args=("patient", "U1", [{"type": "text", "text": "x"}])).get() is True
        assert list(mock_line.sent) == [{"to": "U1", "messages": [{"type": "text", "text": "x"}]}]
        statsd_client.incr.assert_any_call("line_push_sent.patient")

    def test_no_recipient_skipped(self, mock_line):
        assert push_line_message_task.apply(args=("admin", "", [])).get() is False
        assert list(mock_line.sent) == []

    def test_gives_up_after_retries_without_raising(self, statsd_client):
        failing = MagicMock()
        failing.push.side_effect = MessagingError("LINE down", status_code=500)
        with patch("clinic.tasks.get_messaging_service", return_value=failing):
            result = push_line_message_task.apply(args=("admin", "C1", []))

        assert result.get() is False
        assert failing.push.call_count == 4
        statsd_client.incr.assert_any_call("line_push_failed.admin")
