import pytest
import os
import sys
from datetime import datetime
from unittest.mock import patch, MagicMock, call
from slack_sdk.errors import SlackApiError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tools.slack import SlackNotifier, SlackConfigError, NotificationError, RATE_LIMIT_WAIT, RETRY_WAIT
from tools.maintenance import run_slack_test

def slack_error(error):
    return SlackApiError(f"The request to the Slack API failed: {error}", {"ok": False, "error": error})

class TestSlackNotifier:
    """Team notification with retry and backoff."""

    def setup_method(self):
        self.lead = {
            "name": "John Smith",
            "email": "john@acmecorp.com",
            "company": "Acme Corp",
            "phone": "555-0123",
            "source": "Website",
            "row": 2,
            "observed_at": datetime(2026, 10, 19, 9, 30, 0),
        }
        self.client = MagicMock()
        self.notifier = SlackNotifier(token="xoxb-test", channel="C0123", client=self.client)

    def test_sends_on_first_attempt(self):
        self.client.chat_postMessage.return_value = {"ok": True, "ts": "1.1"}

        with patch("tools.slack.time.sleep") as mock_sleep:
            response = self.notifier.notify_team(self.lead, "https://docs.google.com/spreadsheets/d/abc")

        assert response["ts"] == "1.1"
        mock_sleep.assert_not_called()
        kwargs = self.client.chat_postMessage.call_args.kwargs
        assert kwargs["channel"] == "C0123"
        assert kwargs["text"] == "New Complete Lead: John Smith"

    def test_rate_limited_twice_then_success(self):
        self.client.chat_postMessage.side_effect = [
            slack_error("rate_limited"),
            slack_error("rate_limited"),
            {"ok": True, "ts": "1.3"},
        ]

        with patch("tools.slack.time.sleep") as mock_sleep:
            response = self.notifier.notify_team(self.lead)

        assert response["ts"] == "1.3"
        assert self.client.chat_postMessage.call_count == 3
        assert mock_sleep.call_args_list == [call(RATE_LIMIT_WAIT), call(RATE_LIMIT_WAIT)]

    def test_network_failures_exhaust_attempts(self):
        self.client.chat_postMessage.side_effect = ConnectionError("connection reset")

        with patch("tools.slack.time.sleep") as mock_sleep:
            with pytest.raises(NotificationError):
                self.notifier.notify_team(self.lead)

        assert self.client.chat_postMessage.call_count == 3
        assert mock_sleep.call_args_list == [call(RETRY_WAIT), call(RETRY_WAIT)]

    def test_rate_limited_every_attempt_raises(self):
        self.client.chat_postMessage.side_effect = slack_error("ratelimited")

        with patch("tools.slack.time.sleep") as mock_sleep:
            with pytest.raises(NotificationError, match="ratelimited"):
                self.notifier.notify_team(self.lead)

        assert self.client.chat_postMessage.call_count == 3
        assert mock_sleep.call_count == 2

    def test_other_api_errors_retry_after_short_wait(self):
        self.client.chat_postMessage.side_effect = [
            slack_error("internal_error"),
            {"ok": True, "ts": "1.2"},
        ]

        with patch("tools.slack.time.sleep") as mock_sleep:
            self.notifier.notify_team(self.lead)

        assert mock_sleep.call_args_list == [call(RETRY_WAIT)]

    def test_missing_settings_fail_without_retry(self, monkeypatch):
        monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
        monkeypatch.delenv("SLACK_CHANNEL_ID", raising=False)
        notifier = SlackNotifier(client=self.client)

        with patch("tools.slack.time.sleep") as mock_sleep:
            with pytest.raises(SlackConfigError):
                notifier.notify_team(self.lead)

        self.client.chat_postMessage.assert_not_called()
        mock_sleep.assert_not_called()

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("SLACK_BOT_TOKEN", "xoxb-env")
        monkeypatch.setenv("SLACK_CHANNEL_ID", "CENV")
        self.client.chat_postMessage.return_value = {"ok": True, "ts": "1.1"}

        SlackNotifier(client=self.client).notify_team(self.lead)

        assert self.client.chat_postMessage.call_args.kwargs["channel"] == "CENV"

    def test_message_blocks(self):
        message = self.notifier._build_lead_message(self.lead, "https://docs.google.com/spreadsheets/d/abc")
        blocks = message["blocks"]

        assert blocks[0]["type"] == "header"
        assert [f["text"] for f in blocks[1]["fields"]] == [
            "*Name:*\nJohn Smith",
            "*Email:*\njohn@acmecorp.com",
            "*Company:*\nAcme Corp",
            "*Phone:*\n555-0123",
            "*Source:*\nWebsite",
            "*Time:*\n2026-10-19 09:30:00",
        ]
        button = blocks[2]["elements"][0]
        assert blocks[2]["type"] == "actions"
        assert button["url"] == "https://docs.google.com/spreadsheets/d/abc"

    def test_message_without_sheet_url_has_no_button(self):
        message = self.notifier._build_lead_message(self.lead)
        assert [b["type"] for b in message["blocks"]] == ["header", "section"]

    def test_slack_smoke_test(self):
        self.client.chat_postMessage.return_value = {"ok": True, "ts": "9.9"}
        assert run_slack_test(self.notifier) == {"ok": True, "ts": "9.9"}

        self.client.chat_postMessage.side_effect = slack_error("channel_not_found")
        result = run_slack_test(self.notifier)
        assert result["ok"] is False
        assert "channel_not_found" in result["error"]

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
